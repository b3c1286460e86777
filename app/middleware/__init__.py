"""
Middleware package for LashClub.
"""
from .auth import require_user, require_admin, create_token, decode_token
