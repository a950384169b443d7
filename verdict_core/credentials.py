"""
VERDICT Tenant Credentials
==========================
Resolves the per-tenant scoring service API key. A tenant without a key is a
legitimate state: callers get None and decide what that means.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from .config import TENANT_CREDENTIALS_FILE

logger = logging.getLogger(__name__)


class TenantCredentialStore:

    def __init__(self, path: Optional[Path] = None):
        self.path = path or TENANT_CREDENTIALS_FILE
        self._keys: Dict[str, str] = {}
        self.reload()

    def reload(self):
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load tenant credentials from {self.path}: {e}")
            return
        for tenant_id, value in data.items():
            key = self._extract_key(value)
            if key:
                self._keys[str(tenant_id)] = key

    @staticmethod
    def _extract_key(value) -> Optional[str]:
        # Service-account style entries carry the key inside an object.
        if isinstance(value, dict):
            value = value.get("value") or value.get("api_key") or value.get("apiKey") or value.get("key")
        if not isinstance(value, str):
            return None
        return value.strip() or None

    def register(self, tenant_id: str, api_key: Optional[str]):
        key = self._extract_key(api_key)
        if key:
            self._keys[tenant_id] = key
        else:
            self._keys.pop(tenant_id, None)

    async def resolve(self, tenant_id: Optional[str]) -> Optional[str]:
        if not tenant_id:
            return None
        return self._keys.get(tenant_id)


credential_store = TenantCredentialStore()
