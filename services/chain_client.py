"""
Token factory client for EVM chains.
Mints tokens through a bonding-curve launch contract and reads balances.
"""

import asyncio
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from eth_account import Account
from web3 import Web3

from config import get_config
from services.logging_utils import get_logger
from services.models import CollaboratorResult, TokenParams
from services.observability import record_external_call

logger = get_logger(__name__)

# Minimal ABI of the launch factory: one payable mint plus its event
TOKEN_FACTORY_ABI = [
    {
        "inputs": [
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "string", "name": "symbol", "type": "string"},
            {"internalType": "string", "name": "uri", "type": "string"},
            {"internalType": "uint256", "name": "totalSupply", "type": "uint256"},
            {"internalType": "uint8", "name": "decimals", "type": "uint8"}
        ],
        "name": "createToken",
        "outputs": [{"internalType": "address", "name": "token", "type": "address"}],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "token", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "bondingCurve", "type": "address"},
            {"indexed": False, "internalType": "address", "name": "creator", "type": "address"}
        ],
        "name": "TokenCreated",
        "type": "event"
    }
]


class MintError(Exception):
    """The mint transaction did not produce a token."""


class ChainClient:
    """Signs and sends factory mints; reads native balances"""

    def __init__(self, config=None, w3: Optional[Web3] = None, account: Optional[Any] = None):
        self.config = config or get_config()
        self.w3 = w3
        self.account = account
        if self.w3 is None:
            self._initialize()

    def _initialize(self):
        """Connect to the RPC endpoint and load the signing key"""
        try:
            if not self.config.CHAIN_RPC_URL:
                logger.warning("CHAIN_RPC_URL not set, token mints will be dry runs")
                return
            self.w3 = Web3(Web3.HTTPProvider(
                self.config.CHAIN_RPC_URL,
                request_kwargs={"timeout": self.config.COLLABORATOR_TIMEOUT_SECONDS},
            ))
            if self.config.CHAIN_PRIVATE_KEY and self.account is None:
                self.account = Account.from_key(self.config.CHAIN_PRIVATE_KEY)
                logger.info(f"Chain signer loaded: {self.account.address}")
        except Exception as e:
            logger.error(f"Failed to initialize chain client: {e}")
            self.w3 = None
            self.account = None

    @property
    def payer_address(self) -> Optional[str]:
        return self.account.address if self.account is not None else None

    def is_healthy(self) -> bool:
        return self.w3 is not None

    def can_sign(self) -> bool:
        return bool(self.w3 is not None and self.account is not None and self.config.TOKEN_FACTORY_ADDRESS)

    def _mint_sync(self, params: TokenParams) -> Dict[str, Any]:
        factory = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.config.TOKEN_FACTORY_ADDRESS),
            abi=TOKEN_FACTORY_ABI
        )
        address = self.account.address

        tx = factory.functions.createToken(
            params.name,
            params.symbol,
            params.uri,
            params.total_supply * (10 ** params.decimals),
            params.decimals
        ).build_transaction({
            'from': address,
            'value': self.w3.to_wei(Decimal(str(params.initial_buy)), 'ether'),
            'nonce': self.w3.eth.get_transaction_count(address),
            'chainId': self.config.CHAIN_ID or self.w3.eth.chain_id
        })

        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.config.COLLABORATOR_TIMEOUT_SECONDS * 2
        )

        if receipt['status'] != 1:
            raise MintError(f"transaction {Web3.to_hex(tx_hash)} reverted")

        events = factory.events.TokenCreated().process_receipt(receipt)
        if not events:
            raise MintError(f"transaction {Web3.to_hex(tx_hash)} emitted no TokenCreated event")

        args = events[0]['args']
        return {
            "token_address": args['token'],
            "bonding_curve_address": args.get('bondingCurve'),
            "transaction_id": Web3.to_hex(tx_hash),
            "dry_run": False,
        }

    async def mint(self, params: TokenParams) -> CollaboratorResult[Dict[str, Any]]:
        """Create a token on the launch factory.

        Returns a dry-run success when LIVE is off or no signer is
        configured, so the rest of the pipeline behaves the same.
        """
        if not self.config.LIVE or not self.can_sign():
            logger.info(f"DRY RUN - Would mint {params.symbol} ({params.name})")
            return CollaboratorResult.success({
                "token_address": f"dry_run_{uuid.uuid4().hex[:16]}",
                "bonding_curve_address": None,
                "transaction_id": "dry_run",
                "dry_run": True,
            })

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._mint_sync, params),
                timeout=self.config.COLLABORATOR_TIMEOUT_SECONDS * 3,
            )
        except asyncio.TimeoutError:
            logger.error(f"Mint of {params.symbol} timed out")
            record_external_call("chain", "timeout")
            return CollaboratorResult.failure("timeout")
        except Exception as e:
            logger.error(f"Mint of {params.symbol} failed: {e}")
            record_external_call("chain", "error")
            return CollaboratorResult.failure(str(e))

        record_external_call("chain", "success")
        return CollaboratorResult.success(result)

    async def get_balance(self, account: Optional[str] = None) -> CollaboratorResult[Decimal]:
        """Native balance of ``account`` (the signer when omitted), in ether units"""
        target = account or self.payer_address
        if self.w3 is None or not target:
            return CollaboratorResult.failure("no chain connection or account")

        try:
            wei = await asyncio.wait_for(
                asyncio.to_thread(self.w3.eth.get_balance, Web3.to_checksum_address(target)),
                timeout=self.config.COLLABORATOR_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            record_external_call("chain", "timeout")
            return CollaboratorResult.failure("timeout")
        except Exception as e:
            logger.error(f"Error getting balance for {target}: {e}")
            record_external_call("chain", "error")
            return CollaboratorResult.failure(str(e))

        record_external_call("chain", "success")
        return CollaboratorResult.success(Decimal(str(Web3.from_wei(wei, 'ether'))))
