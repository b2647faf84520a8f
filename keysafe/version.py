"""KeySafe Meta information.
   KeySafe keeps credentials, environment variables and TOTP seeds
   encrypted client-side under a master-password derived key.
"""
__title__ = 'keysafe'
__description__ = (
   'Client-side vault layer: master-password key derivation, '
   'field encryption, TOTP and session auto-lock.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 KeySafe Developers'
__author__ = 'KeySafe Developers'
__author_email__ = 'dev@keysafe.invalid'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/keysafe/keysafe'
