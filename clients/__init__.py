# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_email_config,
    get_jwt_secret,
)
from clients.postgres_client import PostgresClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
