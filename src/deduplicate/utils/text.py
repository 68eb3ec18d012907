def shorten_path(path, max_symbols: int = 40) -> str:
    """Keep the last max_symbols characters of a path behind a '...' prefix.

    Paths that already fit are returned unchanged.
    """
    text = str(path)
    if len(text) <= max_symbols:
        return text
    return '...' + text[len(text) - max_symbols:]
