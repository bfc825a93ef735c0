import json
from typing import Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.config import settings
from fintrack.core.errors import ValidationError
from fintrack.core.seed import FALLBACK_EXPENSE_CATEGORY
from fintrack.models.transaction import Transaction, TransactionType, TransactionStatus
from fintrack.models.user import User
from fintrack.schemas.receipt import ReceiptData, ReceiptExtraction
from fintrack.services.accounts import CategoryService, EntityRef
from fintrack.services.ledger import TransactionRepository

logger = structlog.get_logger(__name__)

RECEIPT_PROMPT = """Analyze this receipt image and extract the following information in a structured JSON format:

{
  "merchant_name": "string",
  "date": "YYYY-MM-DD format",
  "time": "HH:MM format (24-hour)",
  "total_amount": "number (decimal)",
  "currency": "string (3-letter code if visible, otherwise %(currency)s)",
  "tax_amount": "number (if available)",
  "items": [
    {"name": "string", "quantity": "number", "unit_price": "number", "total_price": "number"}
  ],
  "payment_method": "string (if visible)",
  "receipt_number": "string (if visible)",
  "category": "string (food, groceries, transport, entertainment, etc.)"
}

Please ensure:
- All monetary values are numbers without currency symbols
- Dates are in YYYY-MM-DD format
- Times are in 24-hour HH:MM format
- If any information is not clearly visible, use null for that field
- Categorize the expense based on the merchant type and items
- Return only the JSON object, no additional text"""


def strip_code_fences(text: str) -> str:
    text = (text or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_receipt_text(text: str) -> ReceiptExtraction:
    """Turn raw model output into an extraction result. Never raises."""
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        # Model sometimes wraps the object in prose
        start = cleaned.find("{")
        end = cleaned.rfind("}") + 1
        if start < 0 or end <= start:
            return ReceiptExtraction(ok=False, error="Failed to parse receipt data", raw_response=cleaned)
        try:
            payload = json.loads(cleaned[start:end])
        except json.JSONDecodeError:
            return ReceiptExtraction(ok=False, error="Failed to parse receipt data", raw_response=cleaned)

    if not isinstance(payload, dict):
        return ReceiptExtraction(ok=False, error="Receipt data must be a JSON object", raw_response=cleaned)

    try:
        data = ReceiptData.model_validate(payload)
    except PydanticValidationError as e:
        return ReceiptExtraction(
            ok=False,
            error=f"Malformed receipt data: {e.error_count()} invalid field(s)",
            raw_response=cleaned,
        )
    return ReceiptExtraction(ok=True, data=data)


class ReceiptExtractor:
    """
    Reads a receipt image with Gemini and returns a transaction candidate.

    The extractor never persists anything. Model or parsing trouble comes
    back as ReceiptExtraction(ok=False) so the caller can fall back to
    manual entry; only bad input (wrong file type, too large) raises.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self._api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._model_name = model_name or settings.GEMINI_MODEL
        self._model = None

    def _get_model(self):
        if self._model is None:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(
                model_name=self._model_name,
                generation_config={"temperature": 0.1},
            )
        return self._model

    @staticmethod
    def validate_upload(image_bytes: bytes, mime_type: Optional[str]) -> None:
        if not image_bytes:
            raise ValidationError("No file provided")
        if not mime_type or not mime_type.startswith("image/"):
            raise ValidationError("Invalid file type. Please upload an image file.")
        if len(image_bytes) > settings.MAX_RECEIPT_BYTES:
            limit_mb = settings.MAX_RECEIPT_BYTES // (1024 * 1024)
            raise ValidationError(f"File too large. Please upload an image smaller than {limit_mb}MB.")

    async def extract(self, image_bytes: bytes, mime_type: Optional[str]) -> ReceiptExtraction:
        self.validate_upload(image_bytes, mime_type)

        if not self._api_key:
            logger.warning("receipt_extraction_failed", reason="missing_api_key")
            return ReceiptExtraction(ok=False, error="Gemini API key not configured")

        prompt = RECEIPT_PROMPT % {"currency": settings.DEFAULT_CURRENCY}
        image_part = {"mime_type": mime_type, "data": image_bytes}
        try:
            response = await self._get_model().generate_content_async([prompt, image_part])
            text = response.text
        except Exception as e:
            logger.warning("receipt_extraction_failed", reason="model_error", error=str(e))
            return ReceiptExtraction(ok=False, error=f"Failed to process receipt: {e}")

        result = parse_receipt_text(text)
        if result.ok:
            logger.info("receipt_extracted", merchant=result.data.merchant_name, size=len(image_bytes))
        else:
            logger.warning("receipt_extraction_failed", reason="unparseable", error=result.error)
        return result


class ReceiptService:
    @staticmethod
    async def save_candidate(db: AsyncSession, user: User, receipt: ReceiptData, account: EntityRef,
                             category: Optional[EntityRef] = None,
                             status: TransactionStatus = TransactionStatus.PENDING,
                             notes: Optional[str] = None, receipt_url: Optional[str] = None) -> Transaction:
        """Record a confirmed receipt as an expense. Defaults to Pending until reconciled."""
        if receipt.total_amount is None:
            raise ValidationError("Receipt has no total amount")
        if not receipt.date:
            raise ValidationError("Receipt has no date")

        if category is None:
            category = await ReceiptService._guess_category(db, user, receipt.category)

        return await TransactionRepository.create(
            db,
            user,
            account=account,
            category=category,
            amount=receipt.total_amount,
            trx_type=TransactionType.EXPENSE,
            trx_date=receipt.date,
            status=status,
            description=(receipt.merchant_name or "Receipt")[:200],
            notes=notes,
            receipt_url=receipt_url,
            receipt_data=receipt.model_dump(by_alias=False),
        )

    @staticmethod
    async def _guess_category(db: AsyncSession, user: User, guess: Optional[str]) -> EntityRef:
        if guess and guess.strip():
            match = await CategoryService.find_by_name_insensitive(db, user, guess)
            if match is not None:
                return match.id
        return FALLBACK_EXPENSE_CATEGORY
