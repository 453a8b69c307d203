def make_key(identity: str, strategy_id: str) -> str:
    """
    Store key of the counter record for one identity under one strategy.

    Example:
        >>> make_key("user42", "10-M")
        'user42:10-M'
    """
    return f"{identity}:{strategy_id}"
