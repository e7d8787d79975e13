"""
Tests for the staff scanner endpoint.
"""
from datetime import date, datetime, timedelta, timezone

from app import db
from app.models import HallPass, PurchaseRecord
from redemption import FulfillmentStatus, ValidityRegime


def add_purchase(student, code, **fields):
    purchase = PurchaseRecord(
        code=code,
        student_id=student.id,
        item_name=fields.pop('item_name', 'Homework Pass'),
        cost=fields.pop('cost', 50),
        category=fields.pop('category', 'Privilege'),
        **fields,
    )
    db.session.add(purchase)
    db.session.commit()
    return purchase


def redeem(client, code):
    return client.post('/api/admin/redeem', json={'code': code})


def test_one_shot_redeems_once(admin_client, test_student):
    purchase = add_purchase(test_student, 'TX-ONE111')

    first = redeem(admin_client, 'TX-ONE111')
    assert first.status_code == 200
    assert first.json['message'] == "Verified! Redeemed Homework Pass."
    assert first.json['student']['name'] == test_student.name
    db.session.refresh(purchase)
    assert purchase.redeemed is True

    second = redeem(admin_client, 'TX-ONE111')
    assert second.status_code == 400
    assert second.json['message'] == "Already used."


def test_unknown_code(admin_client):
    resp = redeem(admin_client, 'TX-ABC123')
    assert resp.status_code == 404
    assert resp.json['message'] == "Code not found."


def test_code_is_required(admin_client):
    assert redeem(admin_client, '   ').status_code == 400


def test_duration_pass_activates_and_persists(admin_client, test_student):
    purchase = add_purchase(
        test_student, 'TX-DUR777', regime=ValidityRegime.DURATION_WINDOW, duration_days=7,
    )
    resp = redeem(admin_client, 'TX-DUR777')
    assert resp.json['message'] == "Activated! Valid for 7 days."
    db.session.refresh(purchase)
    assert purchase.activation_date is not None

    again = redeem(admin_client, 'TX-DUR777')
    assert again.status_code == 200
    assert again.json['message'].startswith("Active! Expires on")


def test_expired_duration_pass_is_retired(admin_client, test_student):
    purchase = add_purchase(
        test_student, 'TX-OLD777', regime=ValidityRegime.DURATION_WINDOW, duration_days=7,
        activation_date=datetime.now(timezone.utc) - timedelta(days=8),
    )
    resp = redeem(admin_client, 'TX-OLD777')
    assert resp.status_code == 400
    assert resp.json['message'] == "Pass has expired."
    db.session.refresh(purchase)
    assert purchase.redeemed is True


def test_fixed_window_pass_not_consumed(admin_client, test_student):
    today = date.today()
    purchase = add_purchase(
        test_student, 'TX-WIN555', regime=ValidityRegime.FIXED_WINDOW,
        start_date=today - timedelta(days=3), end_date=today + timedelta(days=3),
    )
    for _ in range(2):
        assert redeem(admin_client, 'TX-WIN555').status_code == 200
    db.session.refresh(purchase)
    assert purchase.redeemed is False


def test_athletic_pass(admin_client, test_student):
    add_purchase(test_student, 'TX-ATH999', category='Athletic Pass', regime=ValidityRegime.ATHLETIC_PASS)
    resp = redeem(admin_client, 'TX-ATH999')
    assert resp.json['message'] == "Valid Athletic Pass"


def test_external_barcode_pickup(admin_client, test_student):
    purchase = add_purchase(
        test_student, 'TX-HOOD22', item_name='Cougar Hoodie', requires_fulfillment=True,
        fulfillment_status=FulfillmentStatus.READY, external_barcode='8801234',
    )
    resp = redeem(admin_client, '8801234')
    assert resp.json['message'] == "Order picked up successfully!"
    db.session.refresh(purchase)
    assert purchase.fulfillment_status == FulfillmentStatus.FULFILLED
    assert purchase.redeemed is True


def test_active_hall_pass_code_returns_student(admin_client, test_student):
    db.session.add(HallPass(code='HP-ZZZ999', student_id=test_student.id, pass_type='Restroom', status='active'))
    db.session.commit()

    resp = redeem(admin_client, 'HP-ZZZ999')
    assert resp.status_code == 200
    assert resp.json['student']['student_number'] == test_student.student_number
    assert resp.json['hall_pass']['type'] == 'Restroom'
