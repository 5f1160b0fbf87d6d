"""
TaskFi Order & Escrow Service
Places gig orders with their escrow payment in a single transaction and
releases escrowed funds to the freelancer once the buyer approves.
"""

import json
import logging
import secrets
import time
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from errors import (
    Forbidden,
    InternalError,
    InvalidInput,
    InvalidOperation,
    InvalidState,
    NotFound,
    Unauthorized,
)

logger = logging.getLogger(__name__)

ESCROW_CURRENCY = 'USDC'

# Orders have no status column of their own; it is read off the payment
ORDER_STATUS_BY_PAYMENT = {
    'ESCROW': 'IN_PROGRESS',
    'RELEASED': 'COMPLETED',
    'REFUNDED': 'CANCELLED',
}


def derive_order_status(payment_status: Optional[str]) -> str:
    """Display status of an order given the status of its payment"""
    return ORDER_STATUS_BY_PAYMENT.get(payment_status, 'PENDING')


def generate_escrow_handle() -> str:
    """Opaque escrow reference: millisecond timestamp plus a random suffix"""
    return f"escrow_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


class OrderResult:
    """Outcome of a committed gig order"""

    def __init__(self, order_id: int, payment_id: int, summary: Dict):
        self.order_id = order_id
        self.payment_id = payment_id
        self.summary = summary

    def to_dict(self) -> Dict:
        return {
            'success': True,
            'orderId': self.order_id,
            'paymentId': self.payment_id,
            'message': 'Gig order created successfully',
            'order': self.summary,
        }


class OrderService:
    """
    Coordinates the gig order transaction: order record, escrow payment,
    gig order counter and the seller/buyer notifications are committed
    together or not at all.
    """

    def __init__(self, db, Gig, User, GigOrder, Payment, Notification,
                 security_log=None, escrow_handle_factory=generate_escrow_handle):
        """
        Args:
            db: SQLAlchemy database instance
            Gig: Gig model class
            User: User model class
            GigOrder: GigOrder model class
            Payment: Payment model class (or any callable building one)
            Notification: Notification model class
            security_log: Optional SecurityLogger for financial audit events
            escrow_handle_factory: Callable returning a fresh escrow handle
        """
        self.db = db
        self.Gig = Gig
        self.User = User
        self.GigOrder = GigOrder
        self.Payment = Payment
        self.Notification = Notification
        self.security_log = security_log
        self.escrow_handle_factory = escrow_handle_factory

    def _audit(self, event_type, action, severity='low', status='success', **kwargs):
        if self.security_log:
            self.security_log.log_event(
                event_category='financial',
                event_type=event_type,
                action=action,
                severity=severity,
                status=status,
                **kwargs
            )

    def place_order(self, buyer_id, gig_id, package_index, package_claim) -> OrderResult:
        """
        Place an order for one package of a gig.

        Args:
            buyer_id: Authenticated user id of the buyer
            gig_id: Target gig id
            package_index: Position of the package in the gig catalog
            package_claim: Package snapshot sent by the client (name, price,
                delivery_days, features); only trusted once its price matches
                the stored package

        Returns:
            OrderResult with the new order and payment ids

        Raises:
            Unauthorized, NotFound, InvalidState, InvalidOperation,
            InvalidInput, InternalError
        """
        if not buyer_id:
            raise Unauthorized()

        session = self.db.session

        gig = session.get(self.Gig, gig_id)
        if gig is None:
            raise NotFound('Gig not found')

        if gig.status != 'ACTIVE':
            raise InvalidState('Gig is not available for ordering')

        if gig.freelancer_id == buyer_id:
            self._audit('self_order_blocked', f"Blocked self-order on gig {gig.id}",
                        severity='medium', status='blocked', user_id=buyer_id,
                        resource_type='gig', resource_id=gig.id)
            raise InvalidOperation('Cannot order your own gig')

        buyer = session.get(self.User, buyer_id)
        if buyer is None:
            raise NotFound('User not found')

        packages = gig.get_packages()
        if not 0 <= package_index < len(packages):
            raise InvalidInput('Invalid package selection')

        stored_price = packages[package_index].get('price')
        if stored_price != package_claim.price:
            self._audit('package_price_mismatch',
                        f"Rejected order on gig {gig.id}: claimed price does not match catalog",
                        severity='high', status='blocked', user_id=buyer_id,
                        resource_type='gig', resource_id=gig.id,
                        details={'packageIndex': package_index,
                                 'claimedPrice': package_claim.price,
                                 'storedPrice': stored_price})
            raise InvalidInput('Invalid package selection')

        # Plain values only past this point; the rollback path expires ORM state
        owner_id = gig.freelancer_id
        gig_title = gig.title
        freelancer_name = gig.freelancer.display_name if gig.freelancer else None
        buyer_name = buyer.display_name
        package_name = package_claim.name
        amount = package_claim.price

        try:
            order = self.GigOrder(
                freelancer_id=owner_id,
                buyer_id=buyer_id,
                gig_id=gig_id,
                cover_letter=f"Gig order: {package_name} package",
                proposed_budget=amount,
                estimated_days=package_claim.delivery_days,
                package_index=package_index,
                package_name=package_name,
                is_accepted=True,
                accepted_at=datetime.utcnow()
            )
            session.add(order)
            session.flush()

            payment = self.Payment(
                amount=amount,
                currency=ESCROW_CURRENCY,
                status='ESCROW',
                from_user_id=buyer_id,
                to_user_id=owner_id,
                gig_id=gig_id,
                order_id=order.id,
                escrow_address=self.escrow_handle_factory()
            )
            session.add(payment)
            session.flush()

            # Conditional increment: no lost updates, and a gig paused since the
            # validation read above aborts the whole order
            updated = session.query(self.Gig).filter(
                self.Gig.id == gig_id,
                self.Gig.status == 'ACTIVE'
            ).update({self.Gig.order_count: self.Gig.order_count + 1}, synchronize_session=False)
            if updated != 1:
                raise InvalidState('Gig is not available for ordering')

            payload = json.dumps({
                'gigId': gig_id,
                'orderId': order.id,
                'packageName': package_name,
                'amount': amount,
            })
            session.add_all([
                self.Notification(
                    user_id=owner_id,
                    notification_type='GIG_ORDER',
                    title='New Gig Order!',
                    message=f'{buyer_name} ordered your "{gig_title}" gig ({package_name} package)',
                    data=payload
                ),
                self.Notification(
                    user_id=buyer_id,
                    notification_type='ORDER_CONFIRMATION',
                    title='Order Confirmed',
                    message=f'Your order for "{gig_title}" has been confirmed. '
                            f'{freelancer_name} will start working on it.',
                    data=payload
                ),
            ])
            session.flush()

            order_id = order.id
            payment_id = payment.id
            payment_status = payment.status
            session.commit()
        except InvalidState:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Order transaction for gig {gig_id} rolled back: {str(e)}")
            raise InternalError() from e

        logger.info(f"Order {order_id} placed on gig {gig_id} with payment {payment_id} in escrow")
        self._audit('order_placed', f"Gig order {order_id} funded into escrow",
                    user_id=buyer_id, resource_type='payment', resource_id=payment_id,
                    details={'gigId': gig_id, 'amount': amount, 'currency': ESCROW_CURRENCY})

        return OrderResult(order_id, payment_id, {
            'id': order_id,
            'gigTitle': gig_title,
            'freelancerName': freelancer_name,
            'packageName': package_name,
            'amount': amount,
            'deliveryDays': package_claim.delivery_days,
            'status': derive_order_status(payment_status),
        })

    def release_payment(self, user_id, payment_id):
        """
        Release an escrowed payment to the freelancer.

        Only the buyer who funded the escrow may release it, and only while
        it is still in ESCROW.
        """
        if not user_id:
            raise Unauthorized()

        session = self.db.session
        payment = session.get(self.Payment, payment_id)
        if payment is None:
            raise NotFound('Payment not found')

        if payment.from_user_id != user_id:
            raise Forbidden('Only the buyer can release this payment')

        if payment.status != 'ESCROW':
            raise InvalidState(f'Payment cannot be released (status: {payment.status})')

        freelancer_id = payment.to_user_id
        amount = payment.amount
        currency = payment.currency
        gig_id = payment.gig_id
        order_id = payment.order_id

        try:
            updated = session.query(self.Payment).filter(
                self.Payment.id == payment_id,
                self.Payment.status == 'ESCROW'
            ).update({
                self.Payment.status: 'RELEASED',
                self.Payment.released_at: datetime.utcnow()
            }, synchronize_session=False)
            if updated != 1:
                raise InvalidState('Payment cannot be released')

            session.add(self.Notification(
                user_id=freelancer_id,
                notification_type='PAYMENT_RELEASED',
                title='Payment Released',
                message=f'{amount:g} {currency} has been released to you from escrow',
                data=json.dumps({'gigId': gig_id, 'orderId': order_id,
                                 'paymentId': payment_id, 'amount': amount})
            ))
            session.commit()
        except InvalidState:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Escrow release for payment {payment_id} rolled back: {str(e)}")
            raise InternalError() from e

        self._audit('escrow_released', f"Payment {payment_id} released from escrow",
                    user_id=user_id, resource_type='payment', resource_id=payment_id,
                    details={'amount': amount, 'currency': currency})

        return session.get(self.Payment, payment_id)

    def list_orders(self, user_id, role='buyer') -> List[Dict]:
        """Gig orders placed by (buyer) or received by (seller) a user, newest first"""
        if not user_id:
            raise Unauthorized()

        query = self.GigOrder.query.options(
            selectinload(self.GigOrder.payment),
            selectinload(self.GigOrder.gig)
        )
        if role == 'seller':
            query = query.filter(self.GigOrder.freelancer_id == user_id)
        else:
            query = query.filter(self.GigOrder.buyer_id == user_id)

        result = []
        for order in query.order_by(self.GigOrder.created_at.desc(), self.GigOrder.id.desc()).all():
            payment = order.payment
            entry = order.to_dict()
            entry['gigTitle'] = order.gig.title if order.gig else None
            entry['payment'] = payment.to_dict() if payment else None
            entry['status'] = derive_order_status(payment.status if payment else None)
            result.append(entry)
        return result
