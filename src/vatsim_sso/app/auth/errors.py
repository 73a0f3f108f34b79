# src/vatsim_sso/app/auth/errors.py
"""
Error kinds for the VATSIM login path.

`message` is what the end user sees; `detail` is for the server log only.
"""
from __future__ import annotations

from typing import Optional


class SSOError(Exception):
    code = "sso_error"
    status_code = 400
    message = "An error occurred with the login process"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.code
        super().__init__(self.detail)


class HandshakeError(SSOError):
    code = "handshake_failed"
    message = "An error occurred with the login process - please try again"


class UserCancelledError(SSOError):
    code = "cancelled"
    status_code = 401
    message = "You cancelled your login"


class MissingEmailError(SSOError):
    code = "noemail"
    message = "VATSIM did not return an email address for your account, so you cannot log in here"


class AccountCreationDisabledError(SSOError):
    code = "noaccountyet"
    status_code = 403
    message = "You do not have an account here yet and new accounts cannot be created on login"


class LoginRefusedError(SSOError):
    code = "login_refused"
    status_code = 403
    message = "Your account cannot log in at the moment"


class ProfileUpdateRejectedError(SSOError):
    code = "email_locked"
    status_code = 409
    message = "The email address of a VATSIM account can only be changed at VATSIM"
