from decimal import Decimal

def format_currency(amount: Decimal, symbol: str = "") -> str:
    """Format currency amount"""
    text = f"{amount:,.2f}"
    return f"{text} {symbol}" if symbol else text

def format_percentage(rate: Decimal) -> str:
    """Format percentage"""
    return f"{rate.normalize():f}%"
