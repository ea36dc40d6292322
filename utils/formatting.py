# vendora_dispatch/utils/formatting.py

def format_naira(kobo: int) -> str:
    """
    Format an amount in kobo as naira with ',' as thousands separator.
    Example: 200000 -> "₦2,000"
    """
    naira = kobo / 100
    if naira == int(naira):
        return f"₦{naira:,.0f}"
    return f"₦{naira:,.2f}"
