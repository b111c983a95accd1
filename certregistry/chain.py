import json
import os
from dataclasses import dataclass

from web3 import Web3

from certregistry.errors import ExternalServiceError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Used when no Truffle build artifact is available.
REGISTRY_ABI = [
    {
        "name": "issueCertificate",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_certificateHash", "type": "bytes32"},
            {"name": "_studentId", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "name": "getCertificateDetails",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "_certificateHash", "type": "bytes32"}],
        "outputs": [
            {"name": "issuer", "type": "address"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "isValid", "type": "bool"},
            {"name": "studentId", "type": "string"},
        ],
    },
]


@dataclass(frozen=True)
class ChainReceipt:
    tx_hash: str
    block_number: int = None


@dataclass(frozen=True)
class CertificateDetails:
    issuer: str
    timestamp: int
    is_valid: bool
    student_id: str

    @property
    def registered(self):
        return bool(self.issuer) and self.issuer != ZERO_ADDRESS and self.is_valid


def load_abi(path):
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            artifact = json.load(f)
        return artifact["abi"] if isinstance(artifact, dict) else artifact
    return REGISTRY_ABI


class RegistryClient:
    """Certificate registry contract behind web3.

    Connection and contract binding are lazy so the app starts without a
    node; every call that needs the chain raises ExternalServiceError when it
    is unreachable or rejects the transaction.
    """

    def __init__(self, provider, contract_address, abi_path=None, wallet=None, private_key=None, logger=None):
        self.provider = provider
        self.contract_address = contract_address
        self.abi_path = abi_path
        self.wallet = wallet
        self.private_key = private_key
        self.logger = logger
        self._w3 = None
        self._contract = None

    @classmethod
    def from_config(cls, config, provider, logger=None):
        return cls(
            provider,
            config.get("CONTRACT_ADDRESS"),
            abi_path=config.get("CONTRACT_ABI_PATH"),
            wallet=config.get("ADMIN_WALLET"),
            private_key=config.get("ADMIN_PRIVATE_KEY"),
            logger=logger,
        )

    def ensure_contract(self):
        if self._contract is not None:
            return self._contract
        if not self.contract_address:
            raise ExternalServiceError("Blockchain contract not initialized. Set CONTRACT_ADDRESS.")
        try:
            if self._w3 is None:
                self._w3 = Web3(Web3.HTTPProvider(self.provider))
            if not self._w3.is_connected():
                raise ExternalServiceError(f"Blockchain node unreachable at {self.provider}.")
            abi = load_abi(self.abi_path)
            self._contract = self._w3.eth.contract(address=Web3.to_checksum_address(self.contract_address), abi=abi)
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError(f"Could not load registry contract: {e}") from e
        if self.logger:
            self.logger.info(f"registry contract loaded at {self._contract.address}")
        return self._contract

    def submit_certificate(self, cert_hash, student_id):
        """Sign and broadcast issueCertificate, then wait for the receipt."""
        contract = self.ensure_contract()
        if not self.wallet or not self.private_key:
            raise ExternalServiceError("Issuer wallet is not configured. Set ADMIN_WALLET and ADMIN_PRIVATE_KEY.")
        w3 = self._w3
        sender = Web3.to_checksum_address(self.wallet)
        try:
            call = contract.functions.issueCertificate(Web3.to_bytes(hexstr=cert_hash), student_id)
            tx = call.build_transaction({
                "from": sender,
                "nonce": w3.eth.get_transaction_count(sender),
                "gasPrice": w3.eth.gas_price,
                "chainId": w3.eth.chain_id,
            })
            tx["gas"] = w3.eth.estimate_gas(tx)
            signed = w3.eth.account.sign_transaction(tx, self.private_key)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            raise ExternalServiceError(f"Blockchain transaction failed: {e}") from e
        if receipt.get("status", 1) != 1:
            raise ExternalServiceError(f"Blockchain transaction {receipt.transactionHash.to_0x_hex()} reverted.")
        return ChainReceipt(tx_hash=receipt.transactionHash.to_0x_hex(), block_number=receipt.blockNumber)

    def get_certificate_details(self, cert_hash):
        contract = self.ensure_contract()
        try:
            issuer, timestamp, is_valid, student_id = contract.functions.getCertificateDetails(
                Web3.to_bytes(hexstr=cert_hash)
            ).call()
        except Exception as e:
            raise ExternalServiceError(f"Failed to query certificate: {e}") from e
        return CertificateDetails(issuer=issuer, timestamp=int(timestamp), is_valid=bool(is_valid), student_id=student_id)
