"""Tests for the claim workflow: notify, claim, forfeit, disqualify, promote, expiry."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any

import pytest

from giveaways.core.errors import (
    ALREADY_CLAIMED,
    DEADLINE_PASSED,
    INVALID_TRANSITION,
    NOT_ALTERNATE,
    NOT_ELIGIBLE,
    TOKEN_MISMATCH,
    W9_REQUIRED,
    ConflictError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from giveaways.services.claims import requires_w9
from tests.factories.doubles import FlakyGateway, make_engine
from tests.factories.data_factories import (
    NOW,
    build_claim_form,
    build_entry,
    build_giveaway,
    build_winner,
)
from tests.factories.in_memory import InMemoryDatabase


def _drawn(
    db: InMemoryDatabase,
    alternates: int = 0,
    entry_overrides: dict[str, Any] | None = None,
    **overrides: Any,
) -> tuple[dict[str, Any], dict[str, Any], list[dict[str, Any]]]:
    """A drawn giveaway with one pending primary and *alternates* pending alternates."""
    giveaway = build_giveaway(
        winner_selected=1, status="ended", alternate_count=alternates, **overrides
    )
    gid = giveaway["giveaway_id"]
    db.giveaways.seed(giveaway)
    entries = [build_entry(gid, **(entry_overrides or {})) for _ in range(alternates + 1)]
    db.entries.seed(*entries)
    primary = build_winner(gid, entries[0]["entry_id"])
    alts = [
        build_winner(
            gid, e["entry_id"], winner_type="alternate", alternate_order=i + 1
        )
        for i, e in enumerate(entries[1:])
    ]
    db.winners.seed(primary, *alts)
    return giveaway, primary, alts


class TestRequiresW9:
    def test_off_when_flag_unset(self) -> None:
        assert requires_w9(build_giveaway(require_w9=0, prize_value=5000)) is False

    def test_threshold_is_inclusive(self) -> None:
        assert requires_w9(build_giveaway(require_w9=1, prize_value=600, w9_threshold=600))

    def test_below_threshold(self) -> None:
        assert not requires_w9(build_giveaway(require_w9=1, prize_value=599.99, w9_threshold=600))

    def test_no_prize_value(self) -> None:
        assert not requires_w9(build_giveaway(require_w9=1, prize_value=None))


class TestNotify:
    def test_marks_notified_and_keeps_token(self, db, engine, gateway) -> None:
        _, primary, _ = _drawn(db)
        outcome = engine.claims.notify(primary["winner_id"], "both", actor="admin", now=NOW)

        stored = db.winners.find_by_id(primary["winner_id"])
        assert stored["status"] == "notified"
        assert stored["notification_method"] == "both"
        assert stored["claim_token"] == primary["claim_token"]
        assert outcome.warnings == []
        assert primary["claim_token"] in gateway.of_type("winner_notification")[0]["body"]

    def test_renotify_is_allowed_and_token_survives(self, db, engine, gateway) -> None:
        _, primary, _ = _drawn(db)
        engine.claims.notify(primary["winner_id"], "email", now=NOW)
        engine.claims.notify(primary["winner_id"], "email", now=NOW + timedelta(hours=1))

        sent = gateway.of_type("winner_notification")
        assert len(sent) == 2
        assert all(primary["claim_token"] in m["body"] for m in sent)
        assert db.winners.find_by_id(primary["winner_id"])["claim_token"] == primary["claim_token"]

    def test_sms_skipped_without_opt_in(self, db, engine, gateway) -> None:
        _, primary, _ = _drawn(db, entry_overrides={"sms_opt_in": 0})
        outcome = engine.claims.notify(primary["winner_id"], "both", now=NOW)

        assert outcome.notification == {"email": True, "sms": None}
        assert db.winners.find_by_id(primary["winner_id"])["notification_method"] == "email"

    def test_partial_failure_is_a_warning(self, db) -> None:
        engine = make_engine(db, FlakyGateway(fail_sms=True))
        _, primary, _ = _drawn(db)
        outcome = engine.claims.notify(primary["winner_id"], "both", now=NOW)

        assert outcome.notification == {"email": True, "sms": False}
        assert any("sms" in w for w in outcome.warnings)
        assert db.winners.find_by_id(primary["winner_id"])["status"] == "notified"

    def test_no_channel_reached_still_marks_notified(self, db) -> None:
        engine = make_engine(db, FlakyGateway(fail_email=True, fail_sms=True))
        _, primary, _ = _drawn(db)
        outcome = engine.claims.notify(primary["winner_id"], "both", now=NOW)

        stored = db.winners.find_by_id(primary["winner_id"])
        assert stored["status"] == "notified"
        assert stored["notified_at"] == NOW
        assert stored["notification_method"] is None
        assert outcome.notification == {"email": False, "sms": False}
        assert any("no channel reached" in w for w in outcome.warnings)

    def test_renotify_after_total_failure_records_channel(self, db) -> None:
        gateway = FlakyGateway(fail_email=True, fail_sms=True)
        engine = make_engine(db, gateway)
        _, primary, _ = _drawn(db)
        engine.claims.notify(primary["winner_id"], "both", now=NOW)

        gateway.fail_email = False
        outcome = engine.claims.notify(primary["winner_id"], "both", now=NOW)

        assert outcome.notification == {"email": True, "sms": False}
        assert db.winners.find_by_id(primary["winner_id"])["notification_method"] == "email"

    def test_invalid_channel(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        with pytest.raises(ValidationError):
            engine.claims.notify(primary["winner_id"], "pigeon", now=NOW)

    def test_unknown_winner(self, engine) -> None:
        with pytest.raises(NotFoundError):
            engine.claims.notify("missing", now=NOW)

    def test_closed_winner_cannot_be_notified(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        db.winners.update(primary["winner_id"], {"status": "forfeited"})
        with pytest.raises(ConflictError) as exc:
            engine.claims.notify(primary["winner_id"], now=NOW)
        assert exc.value.code == INVALID_TRANSITION

    def test_without_gateway(self, db) -> None:
        engine = make_engine(db, None)
        _, primary, _ = _drawn(db)
        with pytest.raises(PolicyError):
            engine.claims.notify(primary["winner_id"], now=NOW)

    def test_audited(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        engine.claims.notify(primary["winner_id"], actor="admin@example.com", now=NOW)
        history = engine.audit.history(primary["winner_id"])
        assert [h["action"] for h in history] == ["winner_notified"]
        assert history[0]["actor"] == "admin@example.com"


class TestSubmitClaim:
    def test_success_stores_claim_and_confirms(self, db, engine, gateway) -> None:
        _, primary, _ = _drawn(db)
        form = build_claim_form(state="ca")
        result = engine.claims.submit_claim(
            primary["claim_token"], primary["winner_id"], form, now=NOW
        )

        assert result["status"] == "claimed"
        assert result["claim_id"]
        stored = db.winners.find_by_id(primary["winner_id"])
        assert stored["status"] == "claimed"
        assert stored["claimed_at"] == NOW
        claim = db.prize_claims.find_by_winner(primary["winner_id"])
        assert claim["legal_name"] == form["legal_name"]
        assert claim["state"] == "CA"
        assert claim["fulfillment_status"] == "pending"
        assert len(gateway.of_type("claim_confirmation")) == 1

    def test_notified_winner_can_claim(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        engine.claims.notify(primary["winner_id"], now=NOW)
        result = engine.claims.submit_claim(
            primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
        )
        assert result["status"] == "claimed"

    def test_missing_fields(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        with pytest.raises(ValidationError) as exc:
            engine.claims.submit_claim(
                primary["claim_token"],
                primary["winner_id"],
                build_claim_form(city="  ", zip_code=None),
                now=NOW,
            )
        assert "city" in exc.value.detail
        assert "zip_code" in exc.value.detail

    def test_unknown_token(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        with pytest.raises(NotFoundError):
            engine.claims.submit_claim("nope", primary["winner_id"], build_claim_form(), now=NOW)

    def test_token_of_another_winner(self, db, engine) -> None:
        _, primary, alts = _drawn(db, alternates=1)
        with pytest.raises(ValidationError) as exc:
            engine.claims.submit_claim(
                alts[0]["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
            )
        assert exc.value.code == TOKEN_MISMATCH
        assert exc.value.status_code == 403

    def test_second_claim_is_rejected(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        args = (primary["claim_token"], primary["winner_id"])
        engine.claims.submit_claim(*args, build_claim_form(), now=NOW)
        with pytest.raises(ConflictError) as exc:
            engine.claims.submit_claim(*args, build_claim_form(), now=NOW)
        assert exc.value.code == ALREADY_CLAIMED

    def test_concurrent_claims_succeed_once(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        outcomes: list[str] = []
        barrier = threading.Barrier(8)

        def claim() -> None:
            barrier.wait()
            try:
                engine.claims.submit_claim(
                    primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
                )
                outcomes.append("ok")
            except ConflictError as e:
                outcomes.append(e.code)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert len(db.prize_claims.all()) == 1

    def test_deadline_passed(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        with pytest.raises(PolicyError) as exc:
            engine.claims.submit_claim(
                primary["claim_token"],
                primary["winner_id"],
                build_claim_form(),
                now=NOW + timedelta(days=8),
            )
        assert exc.value.code == DEADLINE_PASSED

    def test_unpromoted_alternate_cannot_claim(self, db, engine) -> None:
        _, _, alts = _drawn(db, alternates=1)
        with pytest.raises(PolicyError) as exc:
            engine.claims.submit_claim(
                alts[0]["claim_token"], alts[0]["winner_id"], build_claim_form(), now=NOW
            )
        assert exc.value.code == NOT_ELIGIBLE

    def test_forfeited_winner_cannot_claim(self, db, engine) -> None:
        _, primary, _ = _drawn(db, alternate_selection="manual")
        engine.claims.forfeit(primary["winner_id"], reason="no response", now=NOW)
        with pytest.raises(ConflictError) as exc:
            engine.claims.submit_claim(
                primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
            )
        assert exc.value.code == INVALID_TRANSITION

    def test_w9_required(self, db, engine) -> None:
        _, primary, _ = _drawn(db, require_w9=1, prize_value=1200, w9_threshold=600)
        with pytest.raises(PolicyError) as exc:
            engine.claims.submit_claim(
                primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
            )
        assert exc.value.code == W9_REQUIRED

    def test_w9_reference_accepted(self, db, engine) -> None:
        _, primary, _ = _drawn(db, require_w9=1, prize_value=1200, w9_threshold=600)
        engine.claims.submit_claim(
            primary["claim_token"],
            primary["winner_id"],
            build_claim_form(),
            documents={"w9_document": "uploads/w9/abc.pdf"},
            now=NOW,
        )
        claim = db.prize_claims.find_by_winner(primary["winner_id"])
        assert claim["w9_document"] == "uploads/w9/abc.pdf"

    def test_confirmation_failure_does_not_fail_claim(self, db) -> None:
        engine = make_engine(db, FlakyGateway(fail_email=True))
        _, primary, _ = _drawn(db)
        result = engine.claims.submit_claim(
            primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
        )
        assert result["status"] == "claimed"
        assert any("email" in w for w in result["warnings"])


class TestClaimStatus:
    def test_before_and_after_claim(self, db, engine) -> None:
        giveaway, primary, _ = _drawn(db)
        status = engine.claims.get_claim_status(primary["claim_token"])
        assert status["claimed"] is False
        assert status["prize"] == giveaway["prize_title"]
        assert status["fulfillment_status"] is None

        engine.claims.submit_claim(
            primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
        )
        status = engine.claims.get_claim_status(primary["claim_token"])
        assert status["claimed"] is True
        assert status["status"] == "claimed"
        assert status["fulfillment_status"] == "pending"
        assert status["verified"] is False

    def test_unknown_token(self, engine) -> None:
        with pytest.raises(NotFoundError):
            engine.claims.get_claim_status("does-not-exist")


class TestForfeitAndPromotion:
    def test_forfeit_auto_promotes_first_alternate(self, db, engine) -> None:
        _, primary, alts = _drawn(db, alternates=3)
        later = NOW + timedelta(days=3)
        outcome = engine.claims.forfeit(primary["winner_id"], reason="no reply", now=later)

        assert outcome.winner["status"] == "forfeited"
        assert outcome.promoted["winner_id"] == alts[0]["winner_id"]
        promoted = db.winners.find_by_id(alts[0]["winner_id"])
        assert promoted["winner_type"] == "primary"
        assert promoted["alternate_order"] is None
        assert promoted["claim_deadline"] == later + timedelta(days=7)

    def test_promotions_follow_draw_order(self, db, engine) -> None:
        _, primary, alts = _drawn(db, alternates=3)
        current = primary
        promoted_ids = []
        for _ in range(3):
            outcome = engine.claims.disqualify(current["winner_id"], reason="ineligible", now=NOW)
            current = outcome.promoted
            promoted_ids.append(current["winner_id"])

        assert promoted_ids == [a["winner_id"] for a in alts]
        last = engine.claims.forfeit(current["winner_id"], now=NOW)
        assert last.promoted is None
        assert last.warnings == ["No pending alternate left to promote"]

    def test_promoted_alternate_can_claim(self, db, engine) -> None:
        _, primary, alts = _drawn(db, alternates=1)
        engine.claims.forfeit(primary["winner_id"], now=NOW)
        result = engine.claims.submit_claim(
            alts[0]["claim_token"], alts[0]["winner_id"], build_claim_form(), now=NOW
        )
        assert result["status"] == "claimed"

    def test_manual_mode_does_not_promote(self, db, engine) -> None:
        _, primary, alts = _drawn(db, alternates=2, alternate_selection="manual")
        outcome = engine.claims.forfeit(primary["winner_id"], now=NOW)

        assert outcome.promoted is None
        assert outcome.warnings == []
        assert db.winners.find_by_id(alts[0]["winner_id"])["winner_type"] == "alternate"

    def test_closing_an_alternate_promotes_nobody(self, db, engine) -> None:
        _, _, alts = _drawn(db, alternates=2)
        outcome = engine.claims.disqualify(alts[0]["winner_id"], now=NOW)
        assert outcome.promoted is None
        assert db.winners.find_by_id(alts[1]["winner_id"])["winner_type"] == "alternate"

    def test_claimed_winner_cannot_be_forfeited(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        engine.claims.submit_claim(
            primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
        )
        with pytest.raises(ConflictError) as exc:
            engine.claims.forfeit(primary["winner_id"], now=NOW)
        assert exc.value.code == INVALID_TRANSITION

    def test_manual_promote(self, db, engine) -> None:
        _, _, alts = _drawn(db, alternates=2, alternate_selection="manual")
        outcome = engine.claims.promote(alts[1]["winner_id"], actor="admin", now=NOW)

        assert outcome.winner["winner_type"] == "primary"
        assert db.winners.find_by_id(alts[1]["winner_id"])["claim_deadline"] == NOW + timedelta(
            days=7
        )
        assert [h["action"] for h in engine.audit.history(alts[1]["winner_id"])] == [
            "winner_promoted"
        ]

    def test_promote_primary_is_rejected(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        with pytest.raises(ConflictError) as exc:
            engine.claims.promote(primary["winner_id"], now=NOW)
        assert exc.value.code == NOT_ALTERNATE

    def test_promote_closed_alternate_is_rejected(self, db, engine) -> None:
        _, _, alts = _drawn(db, alternates=1, alternate_selection="manual")
        engine.claims.forfeit(alts[0]["winner_id"], now=NOW)
        with pytest.raises(ConflictError) as exc:
            engine.claims.promote(alts[0]["winner_id"], now=NOW)
        assert exc.value.code == INVALID_TRANSITION

    def test_concurrent_forfeits_promote_distinct_alternates(self, db, engine) -> None:
        giveaway = build_giveaway(winner_selected=1, status="ended", num_winners=4)
        gid = giveaway["giveaway_id"]
        db.giveaways.seed(giveaway)
        entries = [build_entry(gid) for _ in range(8)]
        db.entries.seed(*entries)
        primaries = [build_winner(gid, e["entry_id"]) for e in entries[:4]]
        alts = [
            build_winner(gid, e["entry_id"], winner_type="alternate", alternate_order=i + 1)
            for i, e in enumerate(entries[4:])
        ]
        db.winners.seed(*primaries, *alts)

        promoted: list[str] = []
        barrier = threading.Barrier(4)

        def forfeit(winner_id: str) -> None:
            barrier.wait()
            outcome = engine.claims.forfeit(winner_id, now=NOW)
            if outcome.promoted:
                promoted.append(outcome.promoted["winner_id"])

        threads = [threading.Thread(target=forfeit, args=(p["winner_id"],)) for p in primaries]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(promoted) == sorted(a["winner_id"] for a in alts)


class TestExpireOverdue:
    def test_forfeits_overdue_primaries_only(self, db, engine) -> None:
        _, primary, alts = _drawn(db, alternates=1)
        outcomes = engine.claims.expire_overdue(now=NOW + timedelta(days=8))

        assert [o.winner["winner_id"] for o in outcomes] == [primary["winner_id"]]
        assert db.winners.find_by_id(primary["winner_id"])["status"] == "forfeited"
        assert outcomes[0].promoted["winner_id"] == alts[0]["winner_id"]

    def test_promoted_alternate_has_fresh_window(self, db, engine) -> None:
        _, _, alts = _drawn(db, alternates=1)
        run_at = NOW + timedelta(days=8)
        engine.claims.expire_overdue(now=run_at)

        assert engine.claims.expire_overdue(now=run_at + timedelta(days=1)) == []
        assert db.winners.find_by_id(alts[0]["winner_id"])["status"] == "pending"

    def test_nothing_overdue(self, db, engine) -> None:
        _drawn(db)
        assert engine.claims.expire_overdue(now=NOW) == []

    def test_claimed_winners_are_not_expired(self, db, engine) -> None:
        _, primary, _ = _drawn(db)
        engine.claims.submit_claim(
            primary["claim_token"], primary["winner_id"], build_claim_form(), now=NOW
        )
        assert engine.claims.expire_overdue(now=NOW + timedelta(days=30)) == []
        assert db.winners.find_by_id(primary["winner_id"])["status"] == "claimed"
