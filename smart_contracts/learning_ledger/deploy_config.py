"""Deploy configuration for the Learning Ledger smart contract.

Targets Algorand TestNet via public nodes (AlgoNode / Nodely).
Uses a widened validity window and extended confirmation polling to
prevent "txn dead: round outside of range" errors. Prints the app id to
put in ``LEDGER_APP_ID``.
"""

import logging
import time

import algokit_utils
from algokit_utils.models.transaction import SendParams

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 5


def _is_txn_dead(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "txn dead" in msg or "round outside of" in msg


def _retrying(what: str, action):
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            return action()
        except Exception as exc:
            if _is_txn_dead(exc) and attempt < MAX_RETRIES:
                logger.warning(
                    f"{what} attempt {attempt} hit 'txn dead' — "
                    f"retrying in {RETRY_DELAY_SECONDS}s…"
                )
                time.sleep(RETRY_DELAY_SECONDS)
            else:
                logger.error(f"{what} failed: {exc}")
                raise
    raise RuntimeError(f"{what} exhausted retries")


def deploy() -> None:
    """Deploy the Learning Ledger to TestNet."""

    from smart_contracts.artifacts.learning_ledger.learning_ledger_client import (
        LearningLedgerFactory,
    )

    algorand = algokit_utils.AlgorandClient.from_environment()
    algorand.set_default_validity_window(1000)

    deployer_ = algorand.account.from_environment("DEPLOYER")
    logger.info(f"Deployer address: {deployer_.address}")

    factory = algorand.client.get_typed_app_factory(
        LearningLedgerFactory, default_sender=deployer_.address
    )
    send_params = SendParams(
        max_rounds_to_wait=1000,
        populate_app_call_resources=True,
    )

    app_client, result = _retrying(
        "Deploy",
        lambda: factory.deploy(
            on_update=algokit_utils.OnUpdate.AppendApp,
            on_schema_break=algokit_utils.OnSchemaBreak.AppendApp,
            send_params=send_params,
        ),
    )
    logger.info(f"Deploy succeeded: {app_client.app_name} (app_id={app_client.app_id})")

    # Seed the app account so the first record and index boxes can be created.
    if result.operation_performed in [
        algokit_utils.OperationPerformed.Create,
        algokit_utils.OperationPerformed.Replace,
    ]:
        logger.info(f"Funding app {app_client.app_id} with 1 ALGO for box MBR…")
        _retrying(
            "Funding",
            lambda: algorand.send.payment(
                algokit_utils.PaymentParams(
                    amount=algokit_utils.AlgoAmount(algo=1),
                    sender=deployer_.address,
                    receiver=app_client.app_address,
                    validity_window=1000,
                ),
                send_params=send_params,
            ),
        )
        logger.info("Funding confirmed.")

    logger.info(
        f"Deployed {app_client.app_name} (app_id={app_client.app_id}) "
        f"at {app_client.app_address} — set LEDGER_APP_ID={app_client.app_id}"
    )
