from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func, or_

from app.extensions import db
from app.models import Listing, Offer, Review, Transaction, User
from app.utils.auth_guard import current_user, login_required


offers_bp = Blueprint("offers_bp", __name__, url_prefix="/api")

OFFER_TTL = timedelta(hours=48)


def _amount(value) -> float | None:
    try:
        parsed = round(float(value), 2)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _open_transaction(listing: Listing, *, buyer_id: int, amount: float) -> Transaction:
    existing = listing.transaction
    if existing is not None:
        if existing.status != "CANCELLED":
            raise ValueError("Listing already has an active transaction")
        db.session.delete(existing)
        db.session.flush()
    txn = Transaction.for_amount(
        listing_id=int(listing.id),
        buyer_id=int(buyer_id),
        seller_id=int(listing.seller_id),
        amount=amount,
    )
    db.session.add(txn)
    return txn


def _expire_stale_offers(listing: Listing, now: datetime) -> None:
    for offer in listing.offers.filter(Offer.status == "PENDING").all():
        if offer.is_expired(now):
            offer.status = "EXPIRED"


@offers_bp.post("/listings/<int:listing_id>/offers")
@login_required
def make_offer(listing_id: int):
    user = current_user()
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return jsonify({"ok": False, "message": "Listing not found"}), 404
    if listing.status != "APPROVED":
        return jsonify({"ok": False, "message": "Offers can only be made on approved listings"}), 400
    if int(listing.seller_id) == int(user.id):
        return jsonify({"ok": False, "message": "You cannot make an offer on your own listing"}), 400

    data = request.get_json(silent=True) or {}
    amount = _amount(data.get("amount"))
    if amount is None:
        return jsonify({"ok": False, "message": "Offer amount must be greater than 0"}), 400
    if listing.pricing_type == "OFFERS" and listing.min_offer is not None and amount < float(listing.min_offer):
        return jsonify({"ok": False, "message": f"Offer must be at least R{float(listing.min_offer):.2f}"}), 400
    if listing.pricing_type == "FIXED" and listing.price is not None and amount > float(listing.price):
        return jsonify({"ok": False, "message": "Offer cannot exceed the asking price"}), 400

    now = datetime.utcnow()
    offer = Offer(
        listing_id=int(listing.id),
        buyer_id=int(user.id),
        amount=amount,
        status="PENDING",
        message=(str(data.get("message") or "").strip()[:500] or None),
        expires_at=now + OFFER_TTL,
    )
    try:
        db.session.add(offer)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("offer_create_failed listing_id=%s", listing_id)
        return jsonify({"ok": False, "message": "Failed to submit offer"}), 500
    current_app.logger.info("offer_created offer_id=%s listing_id=%s", offer.id, listing.id)
    return jsonify({"ok": True, "offer": offer.to_dict()}), 201


@offers_bp.get("/listings/<int:listing_id>/offers")
@login_required
def list_offers(listing_id: int):
    user = current_user()
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return jsonify({"ok": False, "message": "Listing not found"}), 404
    q = listing.offers
    if int(listing.seller_id) != int(user.id) and not user.is_admin:
        q = q.filter(Offer.buyer_id == int(user.id))
    rows = q.order_by(Offer.created_at.desc()).all()
    return jsonify({"offers": [o.to_dict() for o in rows]}), 200


@offers_bp.post("/offers/<int:offer_id>/respond")
@login_required
def respond_to_offer(offer_id: int):
    user = current_user()
    offer = db.session.get(Offer, int(offer_id))
    if offer is None:
        return jsonify({"ok": False, "message": "Offer not found"}), 404
    listing = offer.listing
    if int(listing.seller_id) != int(user.id):
        return jsonify({"ok": False, "message": "Forbidden"}), 403

    now = datetime.utcnow()
    if offer.status != "PENDING":
        return jsonify({"ok": False, "message": f"Offer is already {offer.status.lower()}"}), 400
    if offer.is_expired(now):
        offer.status = "EXPIRED"
        db.session.commit()
        return jsonify({"ok": False, "message": "Offer has expired"}), 400
    if listing.status != "APPROVED":
        return jsonify({"ok": False, "message": "Listing is no longer available"}), 400

    data = request.get_json(silent=True) or {}
    action = (data.get("action") or "").strip().lower()
    txn = None
    try:
        if action == "accept":
            offer.status = "ACCEPTED"
            for other in listing.offers.filter(Offer.status == "PENDING", Offer.id != offer.id).all():
                other.status = "REJECTED"
            txn = _open_transaction(listing, buyer_id=int(offer.buyer_id), amount=float(offer.amount))
        elif action == "reject":
            offer.status = "REJECTED"
        elif action == "counter":
            counter = _amount(data.get("counterAmount", data.get("counter_amount")))
            if counter is None:
                return jsonify({"ok": False, "message": "Counter amount must be greater than 0"}), 400
            offer.status = "COUNTERED"
            offer.counter_amount = counter
        else:
            return jsonify({"ok": False, "message": "action must be accept, reject or counter"}), 400
        _expire_stale_offers(listing, now)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({"ok": False, "message": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("offer_respond_failed offer_id=%s", offer_id)
        return jsonify({"ok": False, "message": "Failed to update offer"}), 500

    body = {"ok": True, "offer": offer.to_dict()}
    if txn is not None:
        body["transaction"] = txn.to_dict()
    return jsonify(body), 200


@offers_bp.post("/listings/<int:listing_id>/buy")
@login_required
def buy_now(listing_id: int):
    user = current_user()
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return jsonify({"ok": False, "message": "Listing not found"}), 404
    if listing.status != "APPROVED":
        return jsonify({"ok": False, "message": "Listing is not available for purchase"}), 400
    if listing.pricing_type != "FIXED" or listing.price is None:
        return jsonify({"ok": False, "message": "Buy now is only available on fixed-price listings"}), 400
    if int(listing.seller_id) == int(user.id):
        return jsonify({"ok": False, "message": "You cannot buy your own listing"}), 400
    try:
        txn = _open_transaction(listing, buyer_id=int(user.id), amount=float(listing.price))
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({"ok": False, "message": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("buy_now_failed listing_id=%s", listing_id)
        return jsonify({"ok": False, "message": "Failed to start purchase"}), 500
    current_app.logger.info("transaction_opened transaction_id=%s listing_id=%s", txn.id, listing.id)
    return jsonify({"ok": True, "transaction": txn.to_dict()}), 201


@offers_bp.get("/transactions")
@login_required
def my_transactions():
    user = current_user()
    rows = (
        Transaction.query.filter(or_(Transaction.buyer_id == int(user.id), Transaction.seller_id == int(user.id)))
        .order_by(Transaction.created_at.desc())
        .all()
    )
    return jsonify({"transactions": [t.to_dict() for t in rows]}), 200


def _load_party_transaction(transaction_id: int, user: User):
    txn = db.session.get(Transaction, int(transaction_id))
    if txn is None:
        return None, (jsonify({"ok": False, "message": "Transaction not found"}), 404)
    if int(user.id) not in (int(txn.buyer_id), int(txn.seller_id)):
        return None, (jsonify({"ok": False, "message": "Forbidden"}), 403)
    if txn.status != "PENDING":
        return None, (jsonify({"ok": False, "message": f"Transaction is already {txn.status.lower()}"}), 400)
    return txn, None


@offers_bp.post("/transactions/<int:transaction_id>/complete")
@login_required
def complete_transaction(transaction_id: int):
    user = current_user()
    txn, err = _load_party_transaction(transaction_id, user)
    if err:
        return err
    listing = txn.listing
    if listing.status != "APPROVED":
        return jsonify(
            {
                "ok": False,
                "message": f"Cannot complete sale of listing with status: {listing.status}. Only APPROVED listings can be sold.",
            }
        ), 400
    now = datetime.utcnow()
    txn.status = "COMPLETED"
    txn.completed_at = now
    listing.status = "SOLD"
    listing.sold_at = now
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("transaction_complete_failed transaction_id=%s", transaction_id)
        return jsonify({"ok": False, "message": "Failed to complete transaction"}), 500
    current_app.logger.info("transaction_completed transaction_id=%s", txn.id)
    return jsonify({"ok": True, "transaction": txn.to_dict()}), 200


@offers_bp.post("/transactions/<int:transaction_id>/cancel")
@login_required
def cancel_transaction(transaction_id: int):
    user = current_user()
    txn, err = _load_party_transaction(transaction_id, user)
    if err:
        return err
    # listing status is left untouched
    txn.status = "CANCELLED"
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("transaction_cancel_failed transaction_id=%s", transaction_id)
        return jsonify({"ok": False, "message": "Failed to cancel transaction"}), 500
    return jsonify({"ok": True, "transaction": txn.to_dict()}), 200


@offers_bp.post("/transactions/<int:transaction_id>/review")
@login_required
def review_transaction(transaction_id: int):
    user = current_user()
    txn = db.session.get(Transaction, int(transaction_id))
    if txn is None:
        return jsonify({"ok": False, "message": "Transaction not found"}), 404
    if int(txn.buyer_id) != int(user.id):
        return jsonify({"ok": False, "message": "Only the buyer can review this transaction"}), 403
    if txn.status != "COMPLETED":
        return jsonify({"ok": False, "message": "Only completed transactions can be reviewed"}), 400
    if Review.query.filter_by(transaction_id=int(txn.id)).first() is not None:
        return jsonify({"ok": False, "message": "This transaction has already been reviewed"}), 409

    data = request.get_json(silent=True) or {}
    try:
        rating = int(data.get("rating"))
    except (TypeError, ValueError):
        rating = 0
    if not (1 <= rating <= 5):
        return jsonify({"ok": False, "message": "Rating must be between 1 and 5"}), 400
    comment = str(data.get("comment") or "").strip()[:1000] or None

    review = Review(
        transaction_id=int(txn.id),
        reviewer_id=int(user.id),
        reviewee_id=int(txn.seller_id),
        rating=rating,
        comment=comment,
    )
    try:
        db.session.add(review)
        db.session.flush()
        seller = db.session.get(User, int(txn.seller_id))
        count, average = (
            db.session.query(func.count(Review.id), func.avg(Review.rating))
            .filter(Review.reviewee_id == int(seller.id))
            .one()
        )
        seller.review_count = int(count or 0)
        seller.rating = round(float(average or 0.0), 2)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("review_create_failed transaction_id=%s", transaction_id)
        return jsonify({"ok": False, "message": "Failed to submit review"}), 500
    return jsonify({"ok": True, "review": review.to_dict()}), 201
