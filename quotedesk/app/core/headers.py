def safe_filename(filename: str) -> str:
    """Strip characters that would break out of a quoted header value."""
    return filename.replace('"', "").replace("\r", "").replace("\n", "")


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    return f'{disposition}; filename="{safe_filename(filename)}"'
