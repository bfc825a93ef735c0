from decimal import Decimal

import pytest

from conftest import account_id_by_name, stored_balance
from fintrack.config import settings
from fintrack.core.errors import ValidationError
from fintrack.models.transaction import TransactionStatus, TransactionType
from fintrack.schemas.receipt import ReceiptData
from fintrack.services.receipts import ReceiptExtractor, ReceiptService, parse_receipt_text, strip_code_fences

RECEIPT_JSON = """{
  "merchant_name": "Fresh Mart",
  "date": "2025-09-14",
  "time": "18:42",
  "total_amount": 842.5,
  "currency": "INR",
  "tax_amount": 40.12,
  "items": [{"name": "Milk", "quantity": 2, "unit_price": 32, "total_price": 64}],
  "payment_method": "UPI",
  "receipt_number": "FM-0091",
  "category": "groceries"
}"""

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, text=None, error=None):
        self._text = text
        self._error = error
        self.calls = []

    async def generate_content_async(self, parts):
        self.calls.append(parts)
        if self._error:
            raise self._error
        return FakeResponse(self._text)


def _extractor(model):
    extractor = ReceiptExtractor(api_key="test-key", model_name="models/test")
    extractor._model = model
    return extractor


class TestParsing:
    def test_plain_json(self):
        """Bare JSON parses into receipt data."""
        result = parse_receipt_text(RECEIPT_JSON)
        assert result.ok
        assert result.data.merchant_name == "Fresh Mart"
        assert result.data.total_amount == 842.5
        assert result.data.items[0].unit_price == 32

    def test_fenced_json(self):
        """Markdown code fences are stripped first."""
        result = parse_receipt_text(f"```json\n{RECEIPT_JSON}\n```")
        assert result.ok
        assert result.data.category == "groceries"

    def test_prose_around_json(self):
        """The object is dug out of surrounding prose."""
        result = parse_receipt_text(f"Here is the data you asked for:\n{RECEIPT_JSON}\nThanks!")
        assert result.ok
        assert result.data.receipt_number == "FM-0091"

    def test_garbage_returns_raw_text(self):
        """Unparseable output is reported with the raw text, not raised."""
        result = parse_receipt_text("I could not read this receipt.")
        assert not result.ok
        assert result.error == "Failed to parse receipt data"
        assert result.raw_response == "I could not read this receipt."

    def test_wrong_shape(self):
        """A JSON value that is not an object is rejected softly."""
        result = parse_receipt_text("[1, 2, 3]")
        assert not result.ok
        assert result.raw_response == "[1, 2, 3]"

    def test_malformed_fields(self):
        """Fields of the wrong type mark the extraction as failed."""
        result = parse_receipt_text('{"total_amount": "a lot"}')
        assert not result.ok
        assert "Malformed" in result.error

    def test_strip_fences(self):
        assert strip_code_fences("```\n{}\n```") == "{}"
        assert strip_code_fences("  {} ") == "{}"


class TestExtractor:
    async def test_successful_extraction(self):
        """The image and prompt go to the model and the answer is parsed."""
        model = FakeModel(text=f"```json\n{RECEIPT_JSON}\n```")
        result = await _extractor(model).extract(PNG, "image/png")

        assert result.ok
        assert result.data.total_amount == 842.5
        prompt, image = model.calls[0]
        assert "merchant_name" in prompt
        assert image == {"mime_type": "image/png", "data": PNG}

    async def test_model_error_is_soft(self):
        """API failures come back as a failed extraction."""
        result = await _extractor(FakeModel(error=RuntimeError("quota exceeded"))).extract(PNG, "image/jpeg")

        assert not result.ok
        assert "quota exceeded" in result.error

    async def test_missing_api_key(self):
        """Without a key no call is attempted."""
        result = await ReceiptExtractor(api_key="").extract(PNG, "image/png")
        assert not result.ok
        assert result.error == "Gemini API key not configured"

    async def test_rejects_non_images(self):
        """Only image uploads are accepted."""
        with pytest.raises(ValidationError):
            await _extractor(FakeModel(text="{}")).extract(b"%PDF-1.7", "application/pdf")

    async def test_rejects_large_files(self, monkeypatch):
        """Uploads over the configured limit are rejected."""
        monkeypatch.setattr(settings, "MAX_RECEIPT_BYTES", 16)
        with pytest.raises(ValidationError):
            await _extractor(FakeModel(text="{}")).extract(PNG, "image/png")

    async def test_rejects_empty_upload(self):
        with pytest.raises(ValidationError):
            await _extractor(FakeModel(text="{}")).extract(b"", "image/png")


class TestSaveCandidate:
    async def test_saves_pending_expense(self, db, user):
        """Receipts become Pending expenses in the guessed category."""
        card_id = await account_id_by_name(db, user.id, "Credit Card")
        receipt = parse_receipt_text(RECEIPT_JSON).data

        trx = await ReceiptService.save_candidate(db, user, receipt, account=card_id)

        assert trx.type == TransactionType.EXPENSE
        assert trx.status == TransactionStatus.PENDING
        assert trx.amount == Decimal("842.50")
        assert trx.category.name == "Groceries"
        assert trx.description == "Fresh Mart"
        assert trx.receipt_data["merchant_name"] == "Fresh Mart"
        assert await stored_balance(db, card_id) == Decimal("0.00")

    async def test_cleared_receipt_moves_balance(self, db, user):
        """Saving as Cleared applies the expense immediately."""
        card_id = await account_id_by_name(db, user.id, "Credit Card")
        receipt = ReceiptData(merchant_name="Cafe", date="2025-09-01", total_amount=120)

        await ReceiptService.save_candidate(db, user, receipt, account=card_id, status=TransactionStatus.CLEARED)
        assert await stored_balance(db, card_id) == Decimal("-120.00")

    async def test_unknown_guess_falls_back(self, db, user):
        """Unmatched category guesses land in Shopping."""
        receipt = ReceiptData(merchant_name="Rocket Parts", date="2025-09-01", total_amount=99,
                              category="spaceships")
        trx = await ReceiptService.save_candidate(db, user, receipt, account="Checking Account")
        assert trx.category.name == "Shopping"

    async def test_explicit_category_wins(self, db, user):
        """A category chosen by the user overrides the guess."""
        receipt = ReceiptData(date="2025-09-01", total_amount=15, category="groceries")
        trx = await ReceiptService.save_candidate(db, user, receipt, account="Checking Account", category="Food")
        assert trx.category.name == "Food"
        assert trx.description == "Receipt"

    async def test_incomplete_receipt(self, db, user):
        """Receipts without an amount or a date cannot be saved."""
        with pytest.raises(ValidationError):
            await ReceiptService.save_candidate(db, user, ReceiptData(date="2025-09-01"), account="Credit Card")
        with pytest.raises(ValidationError):
            await ReceiptService.save_candidate(db, user, ReceiptData(total_amount=10), account="Credit Card")
