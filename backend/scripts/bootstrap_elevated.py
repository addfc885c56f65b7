"""
Create the one elevated (super admin) account.

Credentials come from ELEVATED_BOOTSTRAP_EMAIL / ELEVATED_BOOTSTRAP_PASSWORD
and are never hard-coded. Refuses to run when an elevated account already
exists.

Usage:
    python -m scripts.bootstrap_elevated
"""
import asyncio
import logging
import sys

from rubix_auth.config import get_settings
from rubix_auth.database import build_engine, build_session_factory
from rubix_auth.errors import AppError
from rubix_auth.infra.identity_toolkit import IdentityToolkitProvider
from rubix_auth.infra.redis import RedisSecureStore, get_async_redis_client
from rubix_auth.infra.sql import sql_unit_of_work
from rubix_auth.main import configure_logging
from rubix_auth.security.encryption import ValueCipher
from rubix_auth.services.bootstrap import initialize_elevated_account

logger = logging.getLogger("rubix_auth.bootstrap")


async def bootstrap() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.elevated_bootstrap_email or not settings.elevated_bootstrap_password:
        logger.error(
            "elevated_bootstrap_aborted reason=missing ELEVATED_BOOTSTRAP_EMAIL or "
            "ELEVATED_BOOTSTRAP_PASSWORD"
        )
        return 2

    engine = build_engine(settings.database_url, echo=settings.debug)
    redis_client = get_async_redis_client(settings.redis_url)
    identity = IdentityToolkitProvider(
        api_key=settings.identity_api_key,
        token_store=RedisSecureStore(redis_client, ValueCipher(settings.session_cache_secret)),
        base_url=settings.identity_base_url,
        token_url=settings.identity_token_url,
        timeout_seconds=settings.identity_timeout_seconds,
    )
    try:
        profile = await initialize_elevated_account(
            identity,
            sql_unit_of_work(build_session_factory(engine)),
            settings.elevated_bootstrap_email,
            settings.elevated_bootstrap_password,
        )
    except AppError as exc:
        logger.error("elevated_bootstrap_failed code=%s message=%s", exc.code, exc.message)
        return 1
    finally:
        await redis_client.aclose()
        await engine.dispose()

    print(f"Elevated account created: {profile.email} ({profile.id})")
    return 0


def main() -> None:
    sys.exit(asyncio.run(bootstrap()))


if __name__ == "__main__":
    main()
