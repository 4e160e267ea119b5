"""Claim engine: signature-authenticated, replay-safe redemption.

A claim runs these checks in order and aborts on the first failure,
leaving no trace in state:

    1. deadline not passed                    ExpiredAuthorization
    2. total amount > 0                        ZeroAmount
    3. schedule started (vesting only)         VestingNotStarted
    4. signed by the current authorizer        SignatureMismatch
    5. authorization not fully used            ReplayedAuthorization
    6. something unlocked and unredeemed       NothingToClaim
    7. custodian can cover it                  InsufficientCustody

Then it commits, in checks-effects-interactions order:

    8. record the new cumulative amount (mark fully used at the total)
    9. ask the custodian to transfer          TransferFailed → step 8 undone
   10. append the audit event and persist the state snapshot

Every mutating operation holds one non-reentrant guard for its whole
duration. Other threads wait; a custodian calling back into a mutating
operation from inside ``transfer`` gets ReentrantCall. Read-only queries
take no lock and, during a transfer, already see the recorded redemption.

One-shot and vesting claims are the same engine with a different
schedule (InstantSchedule vs PeriodicVestingSchedule).
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Iterator, Optional, Tuple

from claimgate.crypto.codec import hash_authorization, message_hash_hex
from claimgate.crypto.signature import SignatureLike, verify
from claimgate.custody.base import Custodian
from claimgate.engine.replay_guard import RedemptionKey
from claimgate.engine.state import EngineState
from claimgate.engine.vesting import (
    InstantSchedule,
    PeriodicVestingSchedule,
    UnlockSchedule,
    vesting_config_of,
)
from claimgate.errors import (
    ClaimError,
    ExpiredAuthorization,
    InsufficientCustody,
    InvalidVestingConfig,
    NothingToClaim,
    ReentrantCall,
    ReplayedAuthorization,
    SignatureMismatch,
    TransferFailed,
    Unauthorized,
    VestingAlreadyStarted,
    VestingNotStarted,
    ZeroAmount,
)
from claimgate.models.claim import (
    ClaimAuthorization,
    ClaimQuote,
    ClaimReceipt,
    ClaimState,
    VestingConfig,
    check_transition,
    normalize_address,
)
from claimgate.persistence.event_log import EventKind, EventLog

if TYPE_CHECKING:
    from claimgate.persistence.state_store import StateStore

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


def claim_state_of(state: EngineState, auth: ClaimAuthorization) -> ClaimState:
    """Where ``auth`` stands for its recipient."""
    message_hash = hash_authorization(auth)
    if state.guard.is_fully_used(message_hash):
        return ClaimState.FULLY_CLAIMED
    if state.guard.redeemed_amount(auth.recipient, message_hash) > 0:
        return ClaimState.PARTIALLY_CLAIMED
    return ClaimState.UNCLAIMED


def authorization_signed_by(
    auth: ClaimAuthorization, signature: SignatureLike, authorizer: str,
) -> bool:
    """The signature check every claim runs, as a bool.

    Malformed signatures (wrong length, bad hex) count as not signed.
    """
    try:
        return verify(hash_authorization(auth), signature, authorizer)
    except SignatureMismatch:
        return False


def quote_claim(state: EngineState, auth: ClaimAuthorization, now: int) -> ClaimQuote:
    """Compute what ``auth`` would pay out at ``now``. Pure read.

    Does not look at the deadline, the signature or the custodian: it
    answers "how much is unlocked and unredeemed", nothing more.
    """
    message_hash = hash_authorization(auth)
    already = state.guard.redeemed_amount(auth.recipient, message_hash)
    if state.guard.is_fully_used(message_hash):
        return ClaimQuote(0, already, auth.total_amount)
    unlocked = state.schedule.unlocked_amount(auth.total_amount, now)
    return ClaimQuote(
        claimable_now=max(unlocked - already, 0),
        already_claimed=already,
        total_available=auth.total_amount,
    )


class ClaimEngine:
    """Redeems signed claim authorizations against a custodian.

    Usage:
        state = EngineState(owner=owner, authorizer=signer_address)
        engine = ClaimEngine(state, custodian)
        receipt = engine.submit_claim(recipient, 100, 1, deadline, signature)

    Vesting:
        schedule = PeriodicVestingSchedule(VestingConfig(start, 30 * 86400, 4))
        engine = ClaimEngine.create(owner, signer_address, custodian, schedule=schedule)

    Persistence (optional):
        engine = ClaimEngine(state, custodian, event_log=log, state_store=store)
        # Every committed mutation appends an audit event and saves a snapshot.
    """

    def __init__(
        self,
        state: EngineState,
        custodian: Custodian,
        clock: Optional[Clock] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        if not isinstance(custodian, Custodian):
            raise TypeError(
                f"Custodian must implement the Custodian protocol, got {type(custodian)}"
            )
        self._state = state
        self._custodian = custodian
        self._clock = clock or system_clock
        self._event_log = event_log
        self._state_store = state_store

        self._mutex = threading.Lock()
        self._holder: Optional[int] = None

        # Continue numbering after a persisted log to avoid ID collisions
        self._event_counter = event_log.count if event_log is not None else 0

        # Set when a snapshot write fails after a transfer already happened.
        # In-memory state and audit log are correct; the snapshot is stale.
        self._persistence_degraded = False

    @classmethod
    def create(
        cls,
        owner: str,
        authorizer: str,
        custodian: Custodian,
        schedule: Optional[UnlockSchedule] = None,
        **kwargs: Any,
    ) -> ClaimEngine:
        """Build an engine with fresh state."""
        state = EngineState(
            owner=owner,
            authorizer=authorizer,
            schedule=schedule if schedule is not None else InstantSchedule(),
        )
        return cls(state, custodian, **kwargs)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def submit_claim(
        self,
        caller: str,
        total_amount: int,
        nonce: int,
        deadline: int,
        signature: SignatureLike,
    ) -> ClaimReceipt:
        """Redeem whatever ``caller``'s authorization currently unlocks.

        The caller is the recipient. Raises a ClaimError subclass on the
        first failed check; on any error no state is changed.
        """
        with self._non_reentrant():
            try:
                receipt = self._submit(caller, total_amount, nonce, deadline, signature)
            except ClaimError as e:
                logger.warning("Claim rejected [%s] for %s: %s", e.code, caller, e)
                raise
        logger.info(
            "Claim accepted: %d to %s (cumulative %d of %d, %s)",
            receipt.amount, receipt.recipient, receipt.cumulative,
            receipt.total_amount, receipt.message_hash,
        )
        return receipt

    def _submit(
        self,
        caller: str,
        total_amount: int,
        nonce: int,
        deadline: int,
        signature: SignatureLike,
    ) -> ClaimReceipt:
        now = self._clock()
        auth = ClaimAuthorization(caller, total_amount, nonce, deadline)
        schedule = self._state.schedule
        guard = self._state.guard

        if now > auth.deadline:
            raise ExpiredAuthorization(
                f"Authorization expired at {auth.deadline} (now {now})"
            )
        if auth.total_amount == 0:
            raise ZeroAmount("Amount must be greater than 0")
        if schedule.requires_start and not schedule.has_started(now):
            raise VestingNotStarted("Vesting has not started yet")

        message_hash = hash_authorization(auth)
        # Malformed signatures raise SignatureMismatch subclasses from verify()
        if not verify(message_hash, signature, self._state.authorizer):
            raise SignatureMismatch("Invalid signature")

        if guard.is_fully_used(message_hash):
            raise ReplayedAuthorization(
                f"Authorization already used: {message_hash_hex(message_hash)}"
            )

        already = guard.redeemed_amount(auth.recipient, message_hash)
        claimable = schedule.unlocked_amount(auth.total_amount, now) - already
        if claimable <= 0:
            raise NothingToClaim(
                f"Nothing unlocked to claim ({already} of {auth.total_amount} claimed)"
            )

        balance = self.query_custody_balance()
        if balance < claimable:
            raise InsufficientCustody(
                f"Insufficient custody balance: {balance} < {claimable}"
            )

        # Effects
        cumulative = already + claimable
        target = (
            ClaimState.FULLY_CLAIMED if cumulative == auth.total_amount
            else ClaimState.PARTIALLY_CLAIMED
        )
        check_transition(claim_state_of(self._state, auth), target)

        savepoint = guard.savepoint(auth.recipient, message_hash)
        guard.record_redemption(auth.recipient, message_hash, cumulative)
        if target == ClaimState.FULLY_CLAIMED:
            guard.mark_fully_used(message_hash)

        # Interaction
        self._transfer_or_rollback(
            auth.recipient, claimable, lambda: guard.rollback_to(savepoint),
        )

        hash_hex = message_hash_hex(message_hash)
        event_id, warning = self._commit(
            EventKind.CLAIM_SUBMITTED,
            actor=auth.recipient,
            payload={
                "recipient": auth.recipient,
                "amount": claimable,
                "cumulative": cumulative,
                "message_hash": hash_hex,
            },
        )
        return ClaimReceipt(
            recipient=auth.recipient,
            amount=claimable,
            cumulative=cumulative,
            total_amount=auth.total_amount,
            message_hash=hash_hex,
            state=target,
            event_id=event_id,
            warning=warning,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_used(
        self, recipient: str, total_amount: int, nonce: int, deadline: int,
    ) -> bool:
        """True if the authorization can never be redeemed again."""
        auth = ClaimAuthorization(recipient, total_amount, nonce, deadline)
        return self._state.guard.is_fully_used(hash_authorization(auth))

    def query_verify(
        self,
        recipient: str,
        total_amount: int,
        nonce: int,
        deadline: int,
        signature: SignatureLike,
    ) -> bool:
        """Run the exact signature check ``submit_claim`` runs. No mutation."""
        auth = ClaimAuthorization(recipient, total_amount, nonce, deadline)
        return authorization_signed_by(auth, signature, self._state.authorizer)

    def query_claimable(
        self, recipient: str, total_amount: int, nonce: int, deadline: int,
    ) -> ClaimQuote:
        auth = ClaimAuthorization(recipient, total_amount, nonce, deadline)
        return quote_claim(self._state, auth, self._clock())

    def claim_state(
        self, recipient: str, total_amount: int, nonce: int, deadline: int,
    ) -> ClaimState:
        auth = ClaimAuthorization(recipient, total_amount, nonce, deadline)
        return claim_state_of(self._state, auth)

    def query_custody_balance(self) -> int:
        return self._custodian.balance_of(self._custodian.custody_address)

    def redemption_records(self) -> Dict[RedemptionKey, int]:
        return self._state.guard.redemption_records()

    def used_hashes(self) -> FrozenSet[bytes]:
        return self._state.guard.used_hashes()

    @property
    def owner(self) -> str:
        return self._state.owner

    @property
    def authorizer(self) -> str:
        return self._state.authorizer

    @property
    def schedule(self) -> UnlockSchedule:
        return self._state.schedule

    @property
    def vesting_config(self) -> Optional[VestingConfig]:
        return vesting_config_of(self._state.schedule)

    @property
    def custodian(self) -> Custodian:
        return self._custodian

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Privileged operations
    # ------------------------------------------------------------------
    # Each returns the audit warning from the commit, or None.

    def rotate_authorizer_key(self, caller: str, new_key: str) -> Optional[str]:
        """Trust ``new_key`` from now on.

        Takes effect immediately: every outstanding authorization signed
        by the previous key becomes unverifiable, including unredeemed
        vesting instalments.
        """
        with self._non_reentrant():
            self._require_owner(caller)
            new_key = normalize_address(new_key, "authorizer address")
            previous = self._state.authorizer
            self._state.authorizer = new_key

            def _rollback() -> None:
                self._state.authorizer = previous

            self._persist_or_rollback(_rollback)
            _, warning = self._commit(
                EventKind.AUTHORIZER_ROTATED,
                actor=self._state.owner,
                payload={"previous": previous, "current": new_key},
                persist=False,
            )
        logger.info("Authorizer rotated: %s → %s", previous, new_key)
        return warning

    def set_vesting_start(self, caller: str, new_start: int) -> Optional[str]:
        """Move the vesting start. Only allowed before the current start."""
        with self._non_reentrant():
            self._require_owner(caller)
            schedule = self._state.schedule
            if not isinstance(schedule, PeriodicVestingSchedule):
                raise InvalidVestingConfig("Engine has no vesting schedule")
            now = self._clock()
            if schedule.has_started(now):
                raise VestingAlreadyStarted(
                    f"Vesting started at {schedule.start_time} (now {now})"
                )
            self._state.schedule = schedule.with_start(new_start)

            def _rollback() -> None:
                self._state.schedule = schedule

            self._persist_or_rollback(_rollback)
            _, warning = self._commit(
                EventKind.VESTING_START_UPDATED,
                actor=self._state.owner,
                payload={"previous": schedule.start_time, "current": new_start},
                persist=False,
            )
        logger.info("Vesting start moved: %d → %d", schedule.start_time, new_start)
        return warning

    def emergency_drain(self, caller: str, amount: int) -> Optional[str]:
        """Move ``amount`` out of custody to the owner."""
        with self._non_reentrant():
            self._require_owner(caller)
            if amount <= 0:
                raise ZeroAmount("Amount must be greater than 0")
            balance = self.query_custody_balance()
            if balance < amount:
                raise InsufficientCustody(
                    f"Insufficient custody balance: {balance} < {amount}"
                )
            self._transfer_or_rollback(self._state.owner, amount, None)
            _, warning = self._commit(
                EventKind.EMERGENCY_DRAIN,
                actor=self._state.owner,
                payload={"to": self._state.owner, "amount": amount},
                persist=False,
            )
        logger.warning("Emergency drain: %d moved to %s", amount, self._state.owner)
        return warning

    def update_custodian(self, caller: str, custodian: Custodian) -> Optional[str]:
        """Point the engine at a different custodian."""
        with self._non_reentrant():
            self._require_owner(caller)
            if not isinstance(custodian, Custodian):
                raise TypeError(
                    f"Custodian must implement the Custodian protocol, got {type(custodian)}"
                )
            previous = self._custodian.custody_address
            self._custodian = custodian
            _, warning = self._commit(
                EventKind.CUSTODIAN_UPDATED,
                actor=self._state.owner,
                payload={"previous": previous, "current": custodian.custody_address},
                persist=False,
            )
        logger.info("Custodian updated: %s → %s", previous, custodian.custody_address)
        return warning

    def _require_owner(self, caller: str) -> None:
        if not isinstance(caller, str) or caller.lower() != self._state.owner.lower():
            raise Unauthorized(f"Caller is not the owner: {caller!r}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        ident = threading.get_ident()
        if self._holder == ident:
            raise ReentrantCall("Reentrant call into the claim engine")
        with self._mutex:
            self._holder = ident
            try:
                yield
            finally:
                self._holder = None

    def _transfer_or_rollback(
        self,
        to: str,
        amount: int,
        on_rollback: Optional[Callable[[], None]],
    ) -> None:
        """Ask the custodian to pay. Any failure undoes ``on_rollback`` first."""
        try:
            ok = self._custodian.transfer(to, amount)
        except Exception as e:
            if on_rollback is not None:
                on_rollback()
            logger.error("Custodian transfer of %d to %s raised: %s", amount, to, e)
            raise TransferFailed(f"Transfer failed: {e}") from e
        if not ok:
            if on_rollback is not None:
                on_rollback()
            raise TransferFailed("Transfer failed")

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _persist_or_rollback(self, on_rollback: Callable[[], None]) -> None:
        """Save the snapshot before anything external happened.

        On failure the in-memory mutation is undone and the OSError
        propagates: the operation did not take place.
        """
        if self._state_store is None:
            return
        try:
            self._state_store.save(self._state)
        except OSError:
            on_rollback()
            raise

    def _commit(
        self,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
        persist: bool = True,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Record an already-committed mutation. Returns (event_id, warning).

        Runs after the point of no return, so failures here degrade to a
        warning instead of undoing the operation.
        """
        warnings: list[str] = []
        event_id: Optional[str] = None

        if self._event_log is not None:
            try:
                event = self._event_log.record(
                    self._next_event_id(), kind, actor, payload,
                )
                event_id = event.event_id
            except (ValueError, OSError) as e:
                logger.error("Audit event %s not recorded: %s", kind.value, e)
                warnings.append(f"Event log failure: {e}")

        if persist and self._state_store is not None:
            try:
                self._state_store.save(self._state)
            except OSError as e:
                self._persistence_degraded = True
                logger.error("State snapshot not saved after %s: %s", kind.value, e)
                warnings.append(
                    f"Persistence degraded: {e}; state committed but snapshot is stale"
                )

        return event_id, ("; ".join(warnings) or None)
