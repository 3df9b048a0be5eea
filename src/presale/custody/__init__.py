"""Custody — forwarding accepted value to the custodial destination."""

from presale.custody.custodian import Custodian, RecordingCustodian, TransferReceipt

__all__ = ["Custodian", "RecordingCustodian", "TransferReceipt"]
