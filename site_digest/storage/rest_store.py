"""
Digest persistence to a Supabase-style REST table.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import requests

from site_digest.models.digest import DigestResult
from site_digest.storage.memory_store import DigestStore, get_digest_store
from site_digest.utils.config import StoreConfig, get_config
from site_digest.utils.errors import PersistenceError
from site_digest.utils.logging_config import get_logger

logger = get_logger()


class RestDigestStore(DigestStore):
    """Upserts one row per session into <rest_url>/rest/v1/<table>"""

    def __init__(self, store_config: StoreConfig, session: Optional[requests.Session] = None,
                 timeout: int = 30):
        if not store_config.rest_url or not store_config.rest_key:
            raise PersistenceError("REST store needs both DIGEST_STORE_URL and DIGEST_STORE_KEY")
        self.store_config = store_config
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.store_config.rest_url.rstrip('/')}/rest/v1/{self.store_config.table}"

    def _headers(self) -> Dict[str, str]:
        key = self.store_config.rest_key
        return {
            "Content-Type": "application/json",
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Prefer": "resolution=merge-duplicates",
        }

    @staticmethod
    def to_record(result: DigestResult) -> Dict[str, Any]:
        data = result.to_dict()
        return {
            'session_id': data['session_id'],
            'url': data['root_url'],
            'status': data['status'],
            'language': data['language'],
            'company_name': data['company_name'],
            'pricing_text': data['pricing_text'],
            'summary': data['summary'],
            'digest': {
                'pages': data['pages'],
                'total_chars': data['total_chars'],
                'price_facts': data['price_facts'],
                'pricing_cards': data['pricing_cards'],
                'installment_plans': data['installment_plans'],
            },
            'error': data['error'],
            'updated_at': datetime.now().isoformat(),
        }

    def save(self, result: DigestResult) -> None:
        try:
            response = self.session.post(self.endpoint, json=self.to_record(result),
                                         headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise PersistenceError(f"Digest store unreachable: {e}") from e
        if not response.ok:
            raise PersistenceError(f"Digest store rejected the record: HTTP {response.status_code} {response.text[:200]}")
        logger.info("Saved digest to REST store", session_id=result.session_id, stage='PERSIST')

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(self.endpoint, params={'session_id': f"eq.{session_id}"},
                                        headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            rows = response.json()
        except (requests.RequestException, ValueError) as e:
            raise PersistenceError(f"Digest store lookup failed: {e}") from e
        return rows[0] if isinstance(rows, list) and rows else None


def get_persistence_store() -> DigestStore:
    """REST store when configured, otherwise the in-memory session store"""
    store_config = get_config().store
    if store_config.rest_url and store_config.rest_key:
        return RestDigestStore(store_config)
    return get_digest_store()
