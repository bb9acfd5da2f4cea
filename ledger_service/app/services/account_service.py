"""계정 개설/조회 서비스."""

from __future__ import annotations

import logging
import secrets
import string
from decimal import Decimal

from common.types.datetime import utc_now

from ..exceptions import NotFound, ValidationFailed
from ..models.account import Account
from ..repositories.interfaces import AccountRepositoryInterface


logger = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5


def generate_referral_code() -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


class AccountService:
    def __init__(
        self,
        account_repo: AccountRepositoryInterface,
        *,
        referral_bonus_percentage: Decimal,
    ) -> None:
        self._account_repo = account_repo
        self._referral_bonus_percentage = referral_bonus_percentage

    def open_account(self, username: str, referred_by: str | None = None) -> Account:
        """계정을 개설한다.

        추천 코드로 가입하면 그 시점의 추천 보너스 비율을 계정에 스냅샷으로 남긴다.
        이후 설정이 바뀌어도 이 계정의 첫 구매 보너스는 가입 당시 비율로 계산된다.
        """

        username = username.strip()
        if not username:
            raise ValidationFailed("username is required")
        if self._account_repo.find_by_username(username) is not None:
            raise ValidationFailed(f"username already taken: {username}")

        referral_code = referred_by.strip().upper() if referred_by else None
        if referral_code and self._account_repo.find_by_referral_code(referral_code) is None:
            raise NotFound("referral code", referral_code)

        for _ in range(MAX_CODE_ATTEMPTS):
            now = utc_now()
            account = Account(
                username=username,
                referral_code=generate_referral_code(),
                referred_by=referral_code,
                referral_bonus_percentage=(
                    self._referral_bonus_percentage if referral_code else None
                ),
                created_at=now,
                updated_at=now,
            )
            created = self._account_repo.insert(account)
            if created is not None:
                logger.info(
                    "account opened username=%s referred_by=%s",
                    username,
                    referral_code,
                    extra={"account_id": created.id},
                )
                return created
            if self._account_repo.find_by_username(username) is not None:
                raise ValidationFailed(f"username already taken: {username}")

        raise RuntimeError("failed to allocate a unique referral code")

    def get_account(self, account_id: str) -> Account:
        account = self._account_repo.find_by_id(account_id)
        if account is None:
            raise NotFound("account", account_id)
        return account

    def list_accounts(self, page: int, page_size: int) -> tuple[list[Account], int]:
        return self._account_repo.list(page, page_size)
