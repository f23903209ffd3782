"""Listing lifecycle engine - request/accept matching and claim transitions."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Union
from pydantic import ValidationError
from ulid import ULID

from src.models.listing import (
    FALLBACK_RECEIVER_ADDRESS,
    UNKNOWN_COUNTRY,
    Listing,
    ListingDraft,
    ListingStatus,
    ListingView,
    Location,
    compute_expires_at,
)
from src.models.notification import DeliveryResult, EmailStatus
from src.models.outcome import LifecycleOutcome
from src.models.user import Principal, User
from src.services.authorization import ensure_authorized
from src.services.geocoder import NominatimGeocoder
from src.services.notifier import EmailNotifier
from src.services.state_machine import LifecycleAction, next_status
from src.services.supabase_client import SupabaseListingStore, create_supabase_client
from src.utils.config import ServiceConfig
from src.utils.errors import ConflictError, ForbiddenError, InvalidInputError
from src.utils.logging import get_structured_logger, log_timing, mask_user_id, timed

logger = get_structured_logger(__name__)

LOCATION_REQUIRED = "Location must include address, latitude, and longitude"

# Mutation hook: (loaded listing, target status) -> (updated listing, requester that must still be present)
Mutation = Callable[[Listing, ListingStatus], tuple[Listing, Optional[str]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_listing_id() -> str:
    """Generate a text-based listing ID (ULID format)."""
    return str(ULID())


def _validation_detail(error: ValidationError) -> str:
    errors = error.errors()
    if any(err["loc"] and err["loc"][0] == "location" for err in errors):
        return LOCATION_REQUIRED
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in errors
    )


def _describe(location: Optional[Location]) -> str:
    if location is None:
        return "not provided"
    return f"{location.address} ({location.latitude}, {location.longitude})"


class ListingLifecycleEngine:
    """Owns listing transitions and their notification side effects.

    Every write to an existing listing is a conditional save against the
    status and revision that were read. Losing that race reloads the listing
    and re-runs the guard, so a late accept sees the listing already claimed
    while a second concurrent request still gets appended.
    """

    def __init__(
        self,
        store: SupabaseListingStore,
        notifier: EmailNotifier,
        geocoder: NominatimGeocoder,
        clock: Callable[[], datetime] = utc_now,
        default_ttl_days: int = 7,
        conflict_retry_limit: int = 10,
        id_factory: Callable[[], str] = generate_listing_id,
    ):
        self.store = store
        self.notifier = notifier
        self.geocoder = geocoder
        self.clock = clock
        self.default_ttl_days = default_ttl_days
        self.conflict_retry_limit = conflict_retry_limit
        self.id_factory = id_factory

    # ------------------------------------------------------------------
    # Side-effect helpers (never raise)
    # ------------------------------------------------------------------

    async def _resolve_country(self, address: str) -> str:
        try:
            return await self.geocoder.country_for(address)
        except Exception as e:
            logger.warning("Geocoder failed, using default country", error=str(e))
            return UNKNOWN_COUNTRY

    async def _reverse_address(self, latitude: float, longitude: float) -> Optional[str]:
        try:
            return await self.geocoder.reverse(latitude, longitude)
        except Exception as e:
            logger.warning("Reverse geocoding failed", error=str(e))
            return None

    async def _users(self, user_ids: Iterable[str]) -> dict[str, User]:
        try:
            return await self.store.load_users(user_ids)
        except Exception as e:
            logger.warning("Could not load notification recipients", error=str(e))
            return {}

    async def _notify(self, user: Optional[User], subject: str, body: str) -> DeliveryResult:
        if user is None:
            return DeliveryResult(success=False, message="Recipient not found")
        try:
            return await self.notifier.send(user.email, subject, body)
        except Exception as e:
            logger.warning("Notifier raised unexpectedly", user_id=mask_user_id(user.id), error=str(e))
            return DeliveryResult(success=False, message=f"Notification failed: {e}", recipient=user.email)

    async def normalize_receiver_location(self, raw: Any) -> Location:
        """Usable receiver location, or the documented fallback."""
        if isinstance(raw, Location):
            return raw
        if isinstance(raw, dict):
            try:
                return Location.model_validate(raw)
            except ValidationError:
                pass
            try:
                partial = Location(
                    address=FALLBACK_RECEIVER_ADDRESS,
                    latitude=raw.get("latitude"),
                    longitude=raw.get("longitude"),
                )
            except ValidationError:
                partial = None
            if partial is not None:
                address = await self._reverse_address(partial.latitude, partial.longitude)
                if address:
                    return partial.model_copy(update={"address": address})
                return partial
        logger.warning("Malformed receiver location, using fallback", received_type=type(raw).__name__)
        return Location.fallback()

    # ------------------------------------------------------------------
    # Conditional write loop
    # ------------------------------------------------------------------

    async def _transition(
        self,
        principal: Optional[Principal],
        listing_id: str,
        action: LifecycleAction,
        mutate: Mutation,
    ) -> tuple[Listing, Listing]:
        """Load, guard, mutate, conditional save; returns (before, after)."""
        log = logger.bind(listing_id=listing_id, action=action.value)
        with log_timing(f"listing.{action.value}", logger=log):
            for attempt in range(1, self.conflict_retry_limit + 1):
                current = await self.store.load_listing(listing_id)
                ensure_authorized(principal, current, action)
                target = next_status(current.status, action, listing_id=listing_id)
                updated, require_member = mutate(current, target)
                updated = updated.model_copy(update={
                    "revision": current.revision + 1,
                    "updated_at": self.clock(),
                })
                try:
                    saved = await self.store.save_if_status(
                        updated,
                        expected_status=current.status,
                        expected_revision=current.revision,
                        require_member=require_member,
                    )
                except ConflictError:
                    log.warning(
                        "Lost conditional update, reloading",
                        attempt=attempt,
                        max_attempts=self.conflict_retry_limit,
                    )
                    continue

                log.info(
                    "Listing transition committed",
                    from_status=current.status.value,
                    to_status=saved.status.value,
                    revision=saved.revision,
                    principal_id=mask_user_id(principal.id) if principal else None,
                )
                return current, saved

        raise ConflictError(
            f"Listing {listing_id} kept changing; gave up after {self.conflict_retry_limit} attempts",
            listing_id=listing_id,
        )

    # ------------------------------------------------------------------
    # Maintenance and reads
    # ------------------------------------------------------------------

    @timed("listing.sweep_expired", logger=logger)
    async def sweep_expired(self) -> int:
        """Expire available listings whose expiry has passed."""
        count = await self.store.bulk_update_expired(self.clock())
        if count:
            logger.info("Expired stale listings", expired_count=count)
        return count

    async def list_available(self) -> list[ListingView]:
        """Available listings with donor contact, after sweeping."""
        await self.sweep_expired()
        listings = await self.store.list_by_status(ListingStatus.AVAILABLE)
        return await self.store.materialize(listings, ("posted_by",))

    async def list_mine(self, principal: Optional[Principal]) -> list[ListingView]:
        """Every listing the caller posted, in any status."""
        if principal is None:
            raise ForbiddenError("Authentication required")
        await self.sweep_expired()
        listings = await self.store.list_by_owner(principal.id)
        return await self.store.materialize(listings, ("posted_by", "claimed_by"))

    async def get_listing(self, listing_id: str) -> ListingView:
        await self.sweep_expired()
        return await self.store.load_with_refs(listing_id, ("posted_by", "claimed_by"))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create_listing(
        self,
        principal: Optional[Principal],
        payload: Union[ListingDraft, dict],
    ) -> LifecycleOutcome:
        """Create an available listing; nothing is written on invalid input."""
        ensure_authorized(principal, None, LifecycleAction.CREATE)

        if isinstance(payload, ListingDraft):
            draft = payload
        else:
            try:
                draft = ListingDraft.model_validate(payload or {})
            except ValidationError as e:
                raise InvalidInputError(_validation_detail(e))

        with log_timing("listing.create", logger=logger, principal_id=mask_user_id(principal.id)):
            now = self.clock()
            country = await self._resolve_country(draft.location.address)
            listing = Listing(
                id=self.id_factory(),
                title=draft.title,
                description=draft.description,
                quantity=draft.quantity,
                location=draft.location,
                country=country,
                posted_by=principal.id,
                status=next_status(None, LifecycleAction.CREATE),
                created_at=now,
                expires_at=compute_expires_at(now, draft.expires_at, self.default_ttl_days),
                updated_at=now,
            )
            saved = await self.store.insert_listing(listing)

        logger.info(
            "Listing created",
            listing_id=saved.id,
            country=saved.country,
            quantity_kg=saved.quantity,
            expires_at=saved.expires_at.isoformat(),
        )

        users = await self._users([principal.id])
        delivery = await self._notify(
            users.get(principal.id),
            "Food Listing Created Successfully",
            f'You have successfully created a food listing titled "{saved.title}" with a quantity of '
            f"{saved.quantity} kg in {saved.country}. It is now available for receivers to request.",
        )
        return LifecycleOutcome(listing=saved, email_status=EmailStatus.summarize([delivery]))

    async def request_listing(self, principal: Optional[Principal], listing_id: str) -> LifecycleOutcome:
        """Add the caller to the listing's requesters."""
        await self.sweep_expired()

        def mutate(current: Listing, target: ListingStatus) -> tuple[Listing, Optional[str]]:
            return current.model_copy(update={
                "status": target,
                "requested_by": [*current.requested_by, principal.id],
            }), None

        _, saved = await self._transition(principal, listing_id, LifecycleAction.REQUEST, mutate)

        users = await self._users([saved.posted_by, principal.id])
        requester = users.get(principal.id)
        delivery = await self._notify(
            users.get(saved.posted_by),
            "New Request for Your Food Listing",
            f'{requester.email if requester else "A receiver"} has requested your food listing '
            f'"{saved.title}". You now have {len(saved.requested_by)} request(s); '
            f"accept one from your dashboard.",
        )
        return LifecycleOutcome(listing=saved, email_status=EmailStatus.summarize([delivery]))

    async def accept_request(
        self,
        principal: Optional[Principal],
        listing_id: str,
        receiver_id: Optional[str] = None,
    ) -> LifecycleOutcome:
        """Bind one requester to the listing; everyone else is turned down."""
        await self.sweep_expired()

        def mutate(current: Listing, target: ListingStatus) -> tuple[Listing, Optional[str]]:
            if receiver_id is not None:
                if receiver_id not in current.requested_by:
                    raise InvalidInputError(
                        "Receiver has not requested this listing", listing_id=current.id
                    )
                chosen = receiver_id
            else:
                chosen = current.requested_by[0]
            return current.model_copy(update={
                "status": target,
                "claimed_by": chosen,
                "requested_by": [],
            }), chosen

        before, saved = await self._transition(principal, listing_id, LifecycleAction.ACCEPT_REQUEST, mutate)
        rejected = [uid for uid in before.requested_by if uid != saved.claimed_by]

        users = await self._users([saved.posted_by, saved.claimed_by, *rejected])
        donor = users.get(saved.posted_by)
        contact = donor.email if donor else "the donor"

        sends = [
            self._notify(
                users.get(saved.claimed_by),
                "Your Food Request Was Accepted",
                f'Good news! Your request for "{saved.title}" ({saved.quantity} kg) was accepted by '
                f"{contact}. Confirm the deal from your dashboard to exchange pickup locations.",
            )
        ]
        for uid in rejected:
            sends.append(self._notify(
                users.get(uid),
                "Your Food Request Was Not Accepted",
                f'Your request for "{saved.title}" was not accepted; the donor chose another receiver. '
                f"Other listings are still available on your dashboard.",
            ))
        deliveries = list(await asyncio.gather(*sends))

        failed = [d for d in deliveries[1:] if not d.success]
        if failed:
            logger.warning(
                "Some rejection notices were not delivered",
                listing_id=saved.id,
                failed_count=len(failed),
                rejected_count=len(rejected),
            )
        return LifecycleOutcome(listing=saved, email_status=EmailStatus.summarize(deliveries))

    async def confirm_deal(
        self,
        principal: Optional[Principal],
        listing_id: str,
        receiver_location: Any = None,
    ) -> LifecycleOutcome:
        """Record the receiver location and email each side the other's location."""
        # Guard before reverse geocoding; _transition re-checks on the write
        current = await self.store.load_listing(listing_id)
        ensure_authorized(principal, current, LifecycleAction.CONFIRM_DEAL)
        next_status(current.status, LifecycleAction.CONFIRM_DEAL, listing_id=listing_id)
        location = await self.normalize_receiver_location(receiver_location)

        def mutate(current: Listing, target: ListingStatus) -> tuple[Listing, Optional[str]]:
            return current.model_copy(update={
                "status": target,
                "receiver_location": location,
                "deal_confirmed_at": self.clock(),
            }), None

        _, saved = await self._transition(principal, listing_id, LifecycleAction.CONFIRM_DEAL, mutate)

        users = await self._users([saved.posted_by, saved.claimed_by])
        donor = users.get(saved.posted_by)
        receiver = users.get(saved.claimed_by)

        donor_body = (
            f'The deal for "{saved.title}" has been confirmed by '
            f'{receiver.email if receiver else "the receiver"}.\n'
            f"Receiver location: {_describe(saved.receiver_location)}\n"
            f'Receiver phone: {(receiver.phone if receiver else None) or "not provided"}'
        )
        receiver_body = (
            f'You confirmed the deal for "{saved.title}" ({saved.quantity} kg).\n'
            f"Pickup location: {_describe(saved.location)}\n"
            f'Donor phone: {(donor.phone if donor else None) or "not provided"}'
        )

        if donor and receiver and donor.email.strip().lower() == receiver.email.strip().lower():
            logger.warning(
                "Donor and receiver share an email address; sending a single message",
                listing_id=saved.id,
                donor_id=mask_user_id(donor.id),
                receiver_id=mask_user_id(receiver.id),
            )
            deliveries = [await self._notify(donor, "Deal Confirmed", f"{donor_body}\n\n{receiver_body}")]
        else:
            deliveries = list(await asyncio.gather(
                self._notify(donor, "Deal Confirmed: Receiver Location", donor_body),
                self._notify(receiver, "Deal Confirmed: Pickup Location", receiver_body),
            ))
        return LifecycleOutcome(listing=saved, email_status=EmailStatus.summarize(deliveries))

    async def confirm_receipt(self, principal: Optional[Principal], listing_id: str) -> LifecycleOutcome:
        """Mark the food as received by the claimant."""

        def mutate(current: Listing, target: ListingStatus) -> tuple[Listing, Optional[str]]:
            return current.model_copy(update={
                "status": target,
                "received_at": self.clock(),
            }), None

        _, saved = await self._transition(principal, listing_id, LifecycleAction.CONFIRM_RECEIPT, mutate)

        users = await self._users([saved.posted_by, saved.claimed_by])
        receiver = users.get(saved.claimed_by)
        delivery = await self._notify(
            users.get(saved.posted_by),
            "Food Listing Receipt Confirmed",
            f'{receiver.email if receiver else "The receiver"} has confirmed receipt of your food listing '
            f'"{saved.title}". Thank you for your donation!',
        )
        return LifecycleOutcome(listing=saved, email_status=EmailStatus.summarize([delivery]))


def build_engine(config: Optional[ServiceConfig] = None) -> ListingLifecycleEngine:
    """Wire a request-scoped engine from configuration."""
    config = config or ServiceConfig.from_env()
    client = create_supabase_client(config.supabase_url, config.supabase_key)
    store = SupabaseListingStore(client, config.listings_table, config.users_table)
    return ListingLifecycleEngine(
        store=store,
        notifier=EmailNotifier.from_config(config),
        geocoder=NominatimGeocoder.from_config(config),
        default_ttl_days=config.listing_default_ttl_days,
        conflict_retry_limit=config.conflict_retry_limit,
    )
