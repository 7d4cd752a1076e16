from backend.app.models.account import Account
from backend.app.models.credential import Category, CredentialRecord
from backend.app.models.one_time_code import CodePurpose, CodeState, OneTimeCode

__all__ = [
    "Account",
    "Category",
    "CredentialRecord",
    "CodePurpose",
    "CodeState",
    "OneTimeCode",
]
