from __future__ import annotations
import random
import re
import uuid

# ========================================
#           ID GENERATION
# ========================================

# Client message ids (cid) and read marks are drawn from this range
CID_MIN = 1_750_000_000_000
CID_MAX = 2_000_000_000_000

def generate_random_id() -> int:
    """
    Returns a random 13-digit id in [CID_MIN, CID_MAX), used for ``cid`` and ``mark``.
    """
    return random.randrange(CID_MIN, CID_MAX)

def generate_device_id() -> str:
    return str(uuid.uuid4())

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================

_PHONE_RE = re.compile(r'^\+?[1-9]\d{1,14}$')
_SMS_CODE_RE = re.compile(r'^\d{4,6}$')

def validate_phone_number(phone: str) -> bool:
    """
    E.164-ish check: optional '+', no leading zero, at most 15 digits.
    """
    return bool(_PHONE_RE.fullmatch(phone))

def validate_sms_code(code: "str | int") -> bool:
    """
    SMS codes are 4 to 6 digits.
    """
    return bool(_SMS_CODE_RE.fullmatch(str(code)))
