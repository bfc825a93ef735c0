"""Starter taxonomy every newly provisioned user receives."""

DEFAULT_CATEGORIES = [
    {"name": "Salary", "icon": "💰", "color": "#22c55e"},
    {"name": "Freelance", "icon": "💻", "color": "#3b82f6"},
    {"name": "Investments", "icon": "📈", "color": "#8b5cf6"},
    {"name": "Food", "icon": "🍽️", "color": "#f59e0b"},
    {"name": "Groceries", "icon": "🛒", "color": "#10b981"},
    {"name": "Transport", "icon": "🚗", "color": "#ef4444"},
    {"name": "Entertainment", "icon": "🎬", "color": "#ec4899"},
    {"name": "Utilities", "icon": "⚡", "color": "#f97316"},
    {"name": "Healthcare", "icon": "🏥", "color": "#06b6d4"},
    {"name": "Shopping", "icon": "🛍️", "color": "#84cc16"},
    {"name": "Subscriptions", "icon": "📱", "color": "#6366f1"},
    {"name": "Travel", "icon": "✈️", "color": "#14b8a6"},
]

DEFAULT_ACCOUNTS = [
    {"name": "Primary Savings", "kind": "savings"},
    {"name": "Checking Account", "kind": "checking"},
    {"name": "Credit Card", "kind": "credit"},
]

# Receipts whose guessed category matches nothing the user owns land here
FALLBACK_EXPENSE_CATEGORY = "Shopping"
