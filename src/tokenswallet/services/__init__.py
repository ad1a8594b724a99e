"""Custody, transfer and account services."""

from tokenswallet.services.accounts import AccountService
from tokenswallet.services.custodian import KeyCustodian, secret_path
from tokenswallet.services.transfers import TransferCoordinator

__all__ = ["AccountService", "KeyCustodian", "TransferCoordinator", "secret_path"]
