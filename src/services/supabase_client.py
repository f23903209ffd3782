"""Supabase-backed store for listings and users."""

from datetime import datetime
from typing import Iterable, Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.models.listing import Listing, ListingStatus, ListingView, UserRef
from src.models.user import User
from src.utils.errors import ConflictError, NotFoundError, StoreError
import logging

logger = logging.getLogger(__name__)

# Columns fixed at creation; never part of an update payload
IMMUTABLE_COLUMNS = ("id", "posted_by", "created_at")

REF_FIELDS = ("posted_by", "claimed_by")


def create_supabase_client(url: Optional[str], key: Optional[str]) -> Client:
    """Create a Supabase client for one store instance."""
    if not url or not key:
        raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

    options = ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
    )

    client = create_client(url, key, options)
    logger.info("Supabase client initialized", extra={"url": url})
    return client


class SupabaseListingStore:
    """Entity store over the listings and users tables.

    Every mutation of an existing listing goes through save_if_status, which
    turns the update into a conditional write filtered on the expected status
    (and revision / requester membership). An empty result means another
    writer got there first.
    """

    def __init__(
        self,
        client: Client,
        listings_table: str = "food_listings",
        users_table: str = "users",
    ):
        self.client = client
        self.listings_table = listings_table
        self.users_table = users_table

    def _listings(self):
        return self.client.table(self.listings_table)

    def _users(self):
        return self.client.table(self.users_table)

    async def load_listing(self, listing_id: str) -> Listing:
        """Get listing by ID."""
        try:
            result = self._listings().select("*").eq("id", listing_id).execute()
        except Exception as e:
            raise StoreError(f"Failed to get listing: {e}")
        if not result.data:
            raise NotFoundError(f"Listing {listing_id} does not exist", listing_id=listing_id)
        return Listing.model_validate(result.data[0])

    async def insert_listing(self, listing: Listing) -> Listing:
        """Create a new listing."""
        try:
            result = self._listings().insert(listing.to_record()).execute()
        except Exception as e:
            raise StoreError(f"Failed to create listing: {e}")
        if result.data and len(result.data) > 0:
            return Listing.model_validate(result.data[0])
        raise StoreError("Failed to create listing: no data returned")

    async def save_if_status(
        self,
        listing: Listing,
        expected_status: ListingStatus,
        expected_revision: Optional[int] = None,
        require_member: Optional[str] = None,
    ) -> Listing:
        """Write listing only if the stored row still matches the expected state."""
        updates = listing.to_record()
        for column in IMMUTABLE_COLUMNS:
            updates.pop(column, None)

        try:
            query = (
                self._listings()
                .update(updates)
                .eq("id", listing.id)
                .eq("status", expected_status.value)
            )
            if expected_revision is not None:
                query = query.eq("revision", expected_revision)
            if require_member is not None:
                query = query.contains("requested_by", [require_member])
            result = query.execute()
        except Exception as e:
            raise StoreError(f"Failed to update listing: {e}")

        if not result.data:
            logger.info(
                "Conditional listing update matched no rows",
                extra={
                    "listing_id": listing.id,
                    "expected_status": expected_status.value,
                    "expected_revision": expected_revision,
                },
            )
            raise ConflictError(
                f"Listing {listing.id} changed since it was loaded",
                listing_id=listing.id,
            )
        return Listing.model_validate(result.data[0])

    async def bulk_update_expired(self, now: datetime) -> int:
        """Flip every available listing past its expiry to expired."""
        stamp = now.isoformat()
        try:
            result = (
                self._listings()
                .update({"status": ListingStatus.EXPIRED.value, "updated_at": stamp})
                .eq("status", ListingStatus.AVAILABLE.value)
                .lt("expires_at", stamp)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to expire listings: {e}")
        return len(result.data) if result.data else 0

    async def list_by_status(self, status: ListingStatus) -> list[Listing]:
        """Get listings in one status, newest first."""
        try:
            result = (
                self._listings()
                .select("*")
                .eq("status", status.value)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to list listings: {e}")
        return [Listing.model_validate(row) for row in (result.data or [])]

    async def list_by_owner(self, owner_id: str) -> list[Listing]:
        """Get all listings posted by a donor, newest first."""
        try:
            result = (
                self._listings()
                .select("*")
                .eq("posted_by", owner_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to list donor listings: {e}")
        return [Listing.model_validate(row) for row in (result.data or [])]

    async def load_user(self, user_id: str) -> User:
        """Get user by ID."""
        try:
            result = self._users().select("id,email,phone,role").eq("id", user_id).execute()
        except Exception as e:
            raise StoreError(f"Failed to get user: {e}")
        if not result.data:
            raise NotFoundError(f"User {user_id} does not exist")
        return User.model_validate(result.data[0])

    async def load_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Get several users in one query, keyed by ID."""
        ids = sorted({uid for uid in user_ids if uid})
        if not ids:
            return {}
        try:
            result = self._users().select("id,email,phone,role").in_("id", ids).execute()
        except Exception as e:
            raise StoreError(f"Failed to get users: {e}")
        users = [User.model_validate(row) for row in (result.data or [])]
        return {user.id: user for user in users}

    async def materialize(
        self,
        listings: list[Listing],
        fields: Iterable[str] = REF_FIELDS,
    ) -> list[ListingView]:
        """Attach referenced users to listings."""
        fields = tuple(fields)
        unknown = set(fields) - set(REF_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported reference fields: {sorted(unknown)}")

        wanted = []
        for listing in listings:
            for field in fields:
                wanted.append(getattr(listing, field))
        users = await self.load_users(wanted)

        def ref(user_id: Optional[str]) -> Optional[UserRef]:
            user = users.get(user_id) if user_id else None
            if user is None:
                return None
            return UserRef(id=user.id, email=user.email, phone=user.phone)

        return [
            ListingView(
                listing=listing,
                donor=ref(listing.posted_by) if "posted_by" in fields else None,
                claimant=ref(listing.claimed_by) if "claimed_by" in fields else None,
            )
            for listing in listings
        ]

    async def load_with_refs(
        self,
        listing_id: str,
        fields: Iterable[str] = REF_FIELDS,
    ) -> ListingView:
        """Load one listing with referenced users materialized."""
        listing = await self.load_listing(listing_id)
        views = await self.materialize([listing], fields)
        return views[0]
