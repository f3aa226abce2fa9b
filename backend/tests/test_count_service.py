import pytest

from conftest import assert_ledger_consistent
from rims.ledger import AuditCount, NotFoundError, TransactionType
from rims.ledger import count_service
from rims.validation import ValidationError


def test_commit_posts_one_audit_per_variance(ledger, item_a, item_b):
    posted = count_service.commit_audit(ledger, "loc-2", [
        AuditCount(item_a.id, system_qty=10, counted_qty=8),
        AuditCount(item_b.id, system_qty=5, counted_qty=5),
    ])

    assert len(posted) == 1
    tx = posted[0]
    assert tx.type == TransactionType.AUDIT
    assert tx.quantity == 2
    assert tx.reason == "Audit Correction (System: 10, Counted: 8)"
    assert item_a.quantity_at("loc-2") == 8
    assert item_b.quantity_at("loc-2") == 5
    assert_ledger_consistent(ledger)


def test_surplus_count_adds_stock(ledger, item_a):
    count_service.commit_audit(ledger, "loc-2", [AuditCount(item_a.id, 10, 13)])
    assert item_a.quantity_at("loc-2") == 13
    assert ledger.transactions[-1].type == TransactionType.AUDIT


def test_matching_counts_record_nothing(ledger, item_a):
    before = len(ledger.transactions)
    assert count_service.commit_audit(ledger, "loc-2", [AuditCount(item_a.id, 10, 10)]) == []
    assert len(ledger.transactions) == before


def test_unknown_item_rejects_whole_sheet(ledger, item_a):
    with pytest.raises(NotFoundError):
        count_service.commit_audit(ledger, "loc-2", [
            AuditCount(item_a.id, 10, 4),
            AuditCount("missing", 1, 0),
        ])
    assert item_a.quantity_at("loc-2") == 10


def test_negative_count_rejected(ledger, item_a):
    with pytest.raises(ValidationError):
        count_service.commit_audit(ledger, "loc-2", [AuditCount(item_a.id, 10, -1)])


def test_variance_property():
    assert AuditCount("x", system_qty=7, counted_qty=4).variance == -3
