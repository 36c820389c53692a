"""
Feature gateway clients (drive, VPN, object storage).
"""

from entitlement_sync.integrations.gateways.base import GatewayClient, GatewayTarget, GatewayTokenSigner
from entitlement_sync.integrations.gateways.drive import DriveGatewayClient
from entitlement_sync.integrations.gateways.object_storage import ObjectStorageGatewayClient
from entitlement_sync.integrations.gateways.vpn import VpnGatewayClient

__all__ = [
    "GatewayClient",
    "GatewayTarget",
    "GatewayTokenSigner",
    "DriveGatewayClient",
    "ObjectStorageGatewayClient",
    "VpnGatewayClient",
]
