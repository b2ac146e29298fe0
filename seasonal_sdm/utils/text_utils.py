import re


def tidy_variable_name(name: str) -> str:
    """
    Cleans up a string to be a suitable variable name by:
    - Replacing dashes, spaces, and other common separators with underscores.
    - Converting to lowercase.
    - Stripping leading/trailing whitespace and underscores.
    - Ensuring no multiple consecutive underscores.

    Args:
        name (str): The input string.

    Returns:
        str: The cleaned up string, suitable for use as a variable or band name.
    """
    if not isinstance(name, str):
        name = str(name)

    name = re.sub(r'[\s\-/\\.:;,()\[\]{}]', '_', name)
    name = name.lower()
    name = re.sub(r'[^a-z0-9_]', '', name)
    name = re.sub(r'_+', '_', name)
    return name.strip('_')


def csv_safe_label(label):
    """Replace comma separators so free-text labels survive a delimited table."""
    if not isinstance(label, str):
        return label
    return label.replace(", ", "_").replace(",", "_")
