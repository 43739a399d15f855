from fastapi import Header, HTTPException, status

from gacha_api.core.settings import settings


def _check_key(expected: str, provided: str) -> None:
    if not expected:
        return

    if provided != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def require_admin_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    _check_key(settings.admin_api_key, x_api_key)


async def require_merchant_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Merchant console calls; the admin key is accepted as well."""

    if settings.admin_api_key and x_api_key == settings.admin_api_key:
        return
    _check_key(settings.merchant_api_key, x_api_key)
