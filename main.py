"""Application wiring.

Run with an ASGI server using the factory:
    uvicorn main:build_app_from_vault --factory
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from dotenv import load_dotenv
from fastapi import FastAPI

from api.errors import register_error_handlers
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.database import AuthDatabase, MfaCodeStore, VerificationTokenStore
from auth.mfa import OneTimeCodeIssuer
from auth.notifications import NotificationDispatcher
from auth.passwords import CredentialVerifier, PasswordHasher
from auth.security_logger import SecurityLogger
from auth.security_middleware import BearerAuthMiddleware
from auth.service import AuthService
from auth.session import SessionTokenMinter
from auth.tokens import TokenIssuer
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_email_config, get_jwt_secret

logger = logging.getLogger(__name__)


@dataclass
class AuthComponents:
    """Everything the HTTP app needs, built from one config."""

    service: AuthService
    session_minter: SessionTokenMinter
    dispatcher: NotificationDispatcher


def build_auth_components(
    config: AuthConfig,
    postgres: PostgresClient,
    email_client: EmailGatewayClient,
) -> AuthComponents:
    auth_db = AuthDatabase(postgres)
    hasher = PasswordHasher(rounds=config.bcrypt_rounds)
    session_minter = SessionTokenMinter(config)
    dispatcher = NotificationDispatcher(
        email_client,
        app_name=config.app_name,
        max_workers=config.notification_workers,
    )

    service = AuthService(
        config=config,
        auth_db=auth_db,
        token_issuer=TokenIssuer(VerificationTokenStore(postgres), config),
        code_issuer=OneTimeCodeIssuer(MfaCodeStore(postgres), config, dispatcher),
        credentials=CredentialVerifier(auth_db, hasher),
        hasher=hasher,
        session_minter=session_minter,
        dispatcher=dispatcher,
        security_logger=SecurityLogger(postgres),
    )
    return AuthComponents(service=service, session_minter=session_minter, dispatcher=dispatcher)


def create_app(components: AuthComponents) -> FastAPI:
    """FastAPI app with auth routes, bearer middleware and error handlers."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        components.dispatcher.shutdown()

    app = FastAPI(title="Accounts API", lifespan=lifespan)
    app.add_middleware(BearerAuthMiddleware, session_minter=components.session_minter)
    register_error_handlers(app)
    app.include_router(create_auth_router(components.service), prefix="/auth")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def build_app_from_vault() -> FastAPI:
    """Production entry point: secrets from Vault, everything else from AuthConfig defaults."""
    # Vault AppRole credentials may come from a local .env
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = AuthConfig(jwt_secret=get_jwt_secret())
    postgres = PostgresClient(get_database_url())
    email_client = EmailGatewayClient(**get_email_config())

    logger.info("Accounts API starting")
    return create_app(build_auth_components(config, postgres, email_client))
