"""
Package registry storage.

The updater only needs three operations from the registry: the packages due
for a refresh and the two reconciliation writes. MongoStorage is the
production backend, MemoryRepository backs tests.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog
from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from .models import Package, PackageType

logger = structlog.get_logger(__name__)

INACTIVE_WINDOW_DAYS = 90
REFETCH_AFTER_DAYS = 7


class PackageRepository(ABC):
    @abstractmethod
    def due_packages(self, now: datetime) -> List[Package]:
        """Packages whose developers page should be fetched this run."""

    @abstractmethod
    def activate(self, package: Package, versions: Dict[str, str], now: datetime):
        """Store the version map, mark the package active and fetched at ``now``."""

    @abstractmethod
    def deactivate(self, package: Package, now: datetime):
        """Mark the package inactive and fetched at ``now``, keeping stored versions."""


def is_due(package: Package, now: datetime,
           inactive_window_days: int = INACTIVE_WINDOW_DAYS,
           refetch_after_days: int = REFETCH_AFTER_DAYS) -> bool:
    """
    Never fetched, committed to since the last fetch, or inactive but
    committed to recently and not retried for a while.
    """
    if package.last_fetched is None:
        return True
    if package.last_committed is not None and package.last_fetched < package.last_committed:
        return True
    return (
        not package.is_active
        and package.last_committed is not None
        and package.last_committed > now - timedelta(days=inactive_window_days)
        and package.last_fetched < now - timedelta(days=refetch_after_days)
    )


class MemoryRepository(PackageRepository):
    """In-process registry keyed by (type, name)."""

    def __init__(self, packages: List[Package] = None):
        self.packages: Dict[tuple, Package] = {}
        for package in packages or []:
            self.add(package)

    def add(self, package: Package):
        self.packages[package.key] = package

    def get(self, package_type: PackageType, name: str) -> Optional[Package]:
        return self.packages.get((PackageType(package_type).value, name))

    def due_packages(self, now: datetime) -> List[Package]:
        return [package for package in self.packages.values() if is_due(package, now)]

    def activate(self, package: Package, versions: Dict[str, str], now: datetime):
        stored = self.packages.setdefault(package.key, package)
        stored.versions = dict(versions)
        stored.is_active = True
        stored.last_fetched = now

    def deactivate(self, package: Package, now: datetime):
        stored = self.packages.setdefault(package.key, package)
        stored.is_active = False
        stored.last_fetched = now


class MongoStorage(PackageRepository):
    def __init__(self, config: dict = None, client: MongoClient = None):
        if config and 'mongodb' in config:
            mongodb = config['mongodb']
            self.connection_string = mongodb.get('uri')
            self.database_name = mongodb.get('database')
            self.collection_name = mongodb.get('collections', {}).get('packages', 'packages')
            self.inactive_window_days = mongodb.get('inactive_window_days', INACTIVE_WINDOW_DAYS)
            self.refetch_after_days = mongodb.get('refetch_after_days', REFETCH_AFTER_DAYS)
        else:
            raise ValueError("Config dict with a mongodb section must be provided")

        self.client = client
        self.db = None
        self.packages = None

    def connect(self, database_name: str = None) -> bool:
        """Connect to MongoDB and initialize the packages collection"""
        try:
            if self.client is None:
                self.client = MongoClient(self.connection_string, tz_aware=True)
            db_name = database_name or self.database_name
            self.db = self.client[db_name]
            self.packages = self.db[self.collection_name]
            self.client.admin.command('ping')
            return True
        except PyMongoError as e:
            logger.error("mongodb_connect_failed", uri=self.connection_string, error=str(e))
            return False

    def create_indexes(self):
        """Create indexes on the packages collection"""
        self.packages.create_index([("type", ASCENDING), ("name", ASCENDING)], unique=True)
        self.packages.create_index("last_fetched")
        self.packages.create_index([("is_active", ASCENDING), ("last_committed", ASCENDING)])

    def close(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()

    def due_query(self, now: datetime) -> dict:
        return {
            '$or': [
                {'last_fetched': None},
                {'$expr': {'$lt': ['$last_fetched', '$last_committed']}},
                {
                    'is_active': False,
                    'last_committed': {'$gt': now - timedelta(days=self.inactive_window_days)},
                    'last_fetched': {'$lt': now - timedelta(days=self.refetch_after_days)},
                },
            ]
        }

    def due_packages(self, now: datetime) -> List[Package]:
        return [self._to_package(doc) for doc in self.packages.find(self.due_query(now))]

    def activate(self, package: Package, versions: Dict[str, str], now: datetime):
        # version keys contain dots, so the map is stored serialized
        self.packages.update_one(
            self._identity(package),
            {'$set': {'versions': json.dumps(versions), 'is_active': True, 'last_fetched': now}},
            upsert=True,
        )

    def deactivate(self, package: Package, now: datetime):
        self.packages.update_one(
            self._identity(package),
            {'$set': {'is_active': False, 'last_fetched': now}},
            upsert=True,
        )

    def _identity(self, package: Package) -> dict:
        return {'type': package.type.value, 'name': package.name}

    def _to_package(self, doc: dict) -> Package:
        versions = doc.get('versions')
        return Package(
            type=PackageType(doc['type']),
            name=doc['name'],
            last_fetched=doc.get('last_fetched'),
            last_committed=doc.get('last_committed'),
            is_active=bool(doc.get('is_active', False)),
            versions=json.loads(versions) if versions else {},
        )
