# highlevel_auth/utils/__init__.py
from .security import FernetEncryptor, build_encryptor, generate_fernet_key, mask_token

__all__ = ["FernetEncryptor", "build_encryptor", "generate_fernet_key", "mask_token"]
