"""
Entry Ledger
Append-only record of purchased entries for each raffle

Each purchase line becomes one range [entry_start, entry_end) of the raffle's
entry counter. Example: A buys 240 entries then B buys 260
    A = entries 0-239, B = entries 240-499
Owners are found by binary search over the range ends, never by expanding
ranges into per-entry rows.
"""

import logging
from bisect import bisect_right

from sqlalchemy import text

from utils.error_helpers import db_error_handler

from .config import STATUS_OPEN
from .exceptions import (
    CutoffTimeReached,
    EntriesOversold,
    IncorrectPayment,
    InvalidEntryIndex,
    InvalidEntryOption,
    InvalidRaffleStatus,
    MaximumEntriesExceeded,
)
from .lifecycle import require_status
from .models import EntryOption, PrizeKind
from .custodian import NATIVE_ASSET_ADDRESS

logger = logging.getLogger(__name__)


class EntryRanges:
    """Ordered snapshot of one raffle's entry ranges"""

    def __init__(self, records):
        # records: (entry_start, entry_end, participant) in purchase order
        self.ends = [record[1] for record in records]
        self.participants = [record[2] for record in records]

    @property
    def total(self):
        return self.ends[-1] if self.ends else 0

    def owner_at(self, index):
        """
        Participant owning entry `index`

        bisect_right finds the first range whose end is past index.
        """
        if not 0 <= index < self.total:
            raise InvalidEntryIndex(f"Entry {index} outside [0, {self.total})")
        return self.participants[bisect_right(self.ends, index)]

    def __len__(self):
        return len(self.ends)


def load_entry_ranges(conn, raffle_id):
    result = conn.execute(text("""
        SELECT entry_start, entry_end, participant
        FROM raffle_entries
        WHERE raffle_id = :raffle_id
        ORDER BY entry_start
    """), {'raffle_id': raffle_id})
    return EntryRanges(list(result))


def normalize_entry_options(entries):
    options = []
    for entry in entries or []:
        if isinstance(entry, dict):
            entry = EntryOption(**entry)
        options.append(entry)
    if not options:
        raise InvalidEntryOption("At least one entry option is required")
    return options


class EntryLedger:
    """Sells entries and answers ownership questions"""

    def __init__(self, engine, state_machine, coordinator, custodian):
        self.engine = engine
        self.state_machine = state_machine
        self.coordinator = coordinator
        self.custodian = custodian

    def purchase(self, conn, raffle, participant, entries, payment):
        """
        Append entries inside the caller's transaction

        Capacity is checked per participant first, then against the fixed
        minimum; a purchase that breaks either is rejected in full.

        Returns:
            int: Entries granted
        """
        raffle_id = raffle['id']
        require_status(raffle, STATUS_OPEN)
        if not raffle['prizes_deposited']:
            raise InvalidRaffleStatus(f"Raffle #{raffle_id} has no prizes deposited yet", raffle_id=raffle_id)
        if self.state_machine.now() >= raffle['cutoff_time']:
            raise CutoffTimeReached(f"Raffle #{raffle_id} cutoff has passed", raffle_id=raffle_id)

        pricing_options = raffle['pricing_options']
        lines = []
        for option in normalize_entry_options(entries):
            if not 0 <= option.pricing_option_index < len(pricing_options):
                raise InvalidEntryOption(
                    f"No pricing option {option.pricing_option_index} in raffle #{raffle_id}",
                    raffle_id=raffle_id,
                )
            if option.unit_count < 1:
                raise InvalidEntryOption(f"Unit count must be at least 1, got {option.unit_count}", raffle_id=raffle_id)

            pricing = pricing_options[option.pricing_option_index]
            lines.append((option, pricing.entry_count * option.unit_count, pricing.price * option.unit_count))

        entries_granted = sum(line[1] for line in lines)
        required_payment = sum(line[2] for line in lines)

        row = conn.execute(text("""
            SELECT entries_count, amount_paid FROM raffle_participants
            WHERE raffle_id = :raffle_id AND participant = :participant
        """), {'raffle_id': raffle_id, 'participant': participant}).fetchone()
        participant_entries = row[0] if row else 0

        if participant_entries + entries_granted > raffle['maximum_entries_per_participant']:
            raise MaximumEntriesExceeded(
                f"{participant} would hold {participant_entries + entries_granted} entries "
                f"(max {raffle['maximum_entries_per_participant']})",
                raffle_id=raffle_id,
            )

        entries_sold = raffle['entries_sold']
        if raffle['is_minimum_entries_fixed'] and entries_sold + entries_granted > raffle['minimum_entries']:
            raise EntriesOversold(
                f"Only {raffle['minimum_entries'] - entries_sold} entries left in raffle #{raffle_id}",
                raffle_id=raffle_id,
            )

        if payment != required_payment:
            raise IncorrectPayment(f"Expected payment {required_payment}, got {payment}", raffle_id=raffle_id)

        now = self.state_machine.now()
        for option, granted, paid in lines:
            conn.execute(text("""
                INSERT INTO raffle_entries
                    (raffle_id, entry_start, entry_end, participant, pricing_option_index,
                     unit_count, amount_paid, created_at)
                VALUES
                    (:raffle_id, :entry_start, :entry_end, :participant, :pricing_option_index,
                     :unit_count, :amount_paid, :created_at)
            """), {
                'raffle_id': raffle_id,
                'entry_start': entries_sold,
                'entry_end': entries_sold + granted,
                'participant': participant,
                'pricing_option_index': option.pricing_option_index,
                'unit_count': option.unit_count,
                'amount_paid': paid,
                'created_at': now,
            })
            entries_sold += granted

        if row:
            conn.execute(text("""
                UPDATE raffle_participants
                SET entries_count = entries_count + :entries, amount_paid = amount_paid + :paid
                WHERE raffle_id = :raffle_id AND participant = :participant
            """), {'raffle_id': raffle_id, 'participant': participant, 'entries': entries_granted, 'paid': payment})
        else:
            conn.execute(text("""
                INSERT INTO raffle_participants (raffle_id, participant, entries_count, amount_paid, refunded)
                VALUES (:raffle_id, :participant, :entries, :paid, :refunded)
            """), {
                'raffle_id': raffle_id,
                'participant': participant,
                'entries': entries_granted,
                'paid': payment,
                'refunded': False,
            })

        conn.execute(text("""
            UPDATE raffles SET entries_sold = :entries_sold WHERE id = :raffle_id
        """), {'raffle_id': raffle_id, 'entries_sold': entries_sold})
        raffle['entries_sold'] = entries_sold

        if self.state_machine.draw_threshold_reached(raffle, entries_sold):
            self.coordinator.request_draw(conn, raffle)

        # Custody moves last; everything before it rolls back with the transaction
        self.custodian.lock(raffle_id, PrizeKind.NATIVE_CURRENCY, NATIVE_ASSET_ADDRESS, 0, payment, participant)

        logger.info(
            f"🎟️ {participant} bought {entries_granted} entries in raffle #{raffle_id} "
            f"({entries_sold}/{raffle['minimum_entries']})"
        )
        return entries_granted

    @db_error_handler
    def enter_raffle(self, raffle_id, participant, entries, payment):
        """
        Buy entries in a raffle

        Args:
            raffle_id: Raffle to enter
            participant: Buyer account
            entries: List of EntryOption (or dicts with pricing_option_index, unit_count)
            payment: Exact native amount tendered

        Returns:
            int: Entries granted
        """
        entries_granted = None
        try:
            with self.engine.begin() as conn:
                raffle = self.state_machine.load_raffle(conn, raffle_id)
                entries_granted = self.purchase(conn, raffle, participant, entries, payment)
        except Exception:
            # Commit failed after the payment was locked: hand it back
            if entries_granted is not None:
                self.custodian.release(
                    raffle_id, PrizeKind.NATIVE_CURRENCY, NATIVE_ASSET_ADDRESS, 0, payment, participant
                )
            raise
        return entries_granted

    def entry_owner_at(self, raffle_id, index):
        """
        Participant owning entry `index` of a raffle

        Uses the (raffle_id, entry_start) primary key index, so the lookup
        is logarithmic in the number of purchases.
        """
        with self.engine.connect() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            if not 0 <= index < raffle['entries_sold']:
                raise InvalidEntryIndex(f"Entry {index} outside [0, {raffle['entries_sold']})", raffle_id=raffle_id)

            return conn.execute(text("""
                SELECT participant FROM raffle_entries
                WHERE raffle_id = :raffle_id AND entry_start <= :index
                ORDER BY entry_start DESC
                LIMIT 1
            """), {'raffle_id': raffle_id, 'index': index}).scalar()

    def get_entries(self, raffle_id, participant):
        """
        Get a participant's entry ranges and totals

        Returns:
            dict: records, entries_count, amount_paid, refunded
        """
        with self.engine.connect() as conn:
            self.state_machine.load_raffle(conn, raffle_id)

            records = conn.execute(text("""
                SELECT entry_start, entry_end, pricing_option_index, unit_count, amount_paid
                FROM raffle_entries
                WHERE raffle_id = :raffle_id AND participant = :participant
                ORDER BY entry_start
            """), {'raffle_id': raffle_id, 'participant': participant})

            totals = conn.execute(text("""
                SELECT entries_count, amount_paid, refunded FROM raffle_participants
                WHERE raffle_id = :raffle_id AND participant = :participant
            """), {'raffle_id': raffle_id, 'participant': participant}).fetchone()

            return {
                'raffle_id': raffle_id,
                'participant': participant,
                'records': [
                    {
                        'entry_start': row[0],
                        'entry_end': row[1],
                        'pricing_option_index': row[2],
                        'unit_count': row[3],
                        'amount_paid': row[4],
                    }
                    for row in records
                ],
                'entries_count': totals[0] if totals else 0,
                'amount_paid': totals[1] if totals else 0,
                'refunded': bool(totals[2]) if totals else False,
            }
