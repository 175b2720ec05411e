"""
CSV line tokenizer.

Broker exports are not always valid RFC 4180 CSV (unbalanced quotes,
trailing commas, Windows line endings), so lines are split by hand with a
simple in-quotes toggle instead of the csv module.
"""

BOM = "\ufeff"


def parse_csv_line(line: str) -> list[str]:
    """
    Split one CSV line into trimmed fields.

    Each double quote toggles an "inside quotes" flag; commas only split
    fields outside quotes. Quote characters themselves are dropped. An
    unbalanced quote swallows the rest of the line into one field.

    Args:
        line: Raw text line without its newline

    Returns:
        Ordered list of field values

    Example:
        >>> parse_csv_line('A,"B,C",D')
        ['A', 'B,C', 'D']
    """
    fields = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    fields.append("".join(current).strip())
    return fields


def split_lines(text: str) -> list[tuple[int, str]]:
    """
    Split raw CSV text into non-blank lines with 1-based line numbers.

    Args:
        text: Complete CSV text (a leading UTF-8 BOM is ignored)

    Returns:
        List of (line_number, line) tuples; blank lines are dropped but
        the numbering still follows the physical file
    """
    if text.startswith(BOM):
        text = text[len(BOM):]

    return [
        (number, line)
        for number, line in enumerate(text.splitlines(), start=1)
        if line.strip()
    ]
