import secrets
import string

CODE_ALPHABET = string.ascii_uppercase + string.digits

def generate_code(length: int = 6, alphabet: str = CODE_ALPHABET) -> str:
    """Generate a random code from ``alphabet`` (upper-case alphanumerics by default)"""
    return "".join(secrets.choice(alphabet) for _ in range(length))
