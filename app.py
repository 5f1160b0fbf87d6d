from flask import Flask, request, jsonify, session
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from pydantic import ValidationError
from werkzeug.exceptions import InternalServerError
from datetime import datetime, timedelta
from functools import wraps
from dotenv import load_dotenv
import os
import secrets
import json

from errors import MarketplaceError
from gig_service import GigService
from job_service import JobService
from notification_dispatcher import NotificationDispatcher, LogNotificationSink, WebhookNotificationSink
from order_service import OrderService
from rate_limiter import RateLimiter
from scheduled_jobs import init_scheduler
from schemas import (
    ApplyToJobRequest,
    CheckUsernameRequest,
    CreateGigRequest,
    CreateJobRequest,
    GigQuery,
    JobQuery,
    MarkReadRequest,
    OrderGigRequest,
    OrderListQuery,
    UpdateGigRequest,
    form_args,
)
from security_logger import init_security_logger

load_dotenv()

app = Flask(__name__)

# Set secret key with fallback
app.secret_key = os.environ.get("SESSION_SECRET") or os.environ.get("SECRET_KEY")
if not app.secret_key:
    # Sessions will not survive a restart; set SESSION_SECRET in production
    app.secret_key = secrets.token_hex(32)
    app.logger.warning("Using auto-generated SECRET_KEY. Set SESSION_SECRET or SECRET_KEY in production!")

app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///taskfi.db')
if app.config['SQLALCHEMY_DATABASE_URI'].startswith('postgres://'):
    app.config['SQLALCHEMY_DATABASE_URI'] = app.config['SQLALCHEMY_DATABASE_URI'].replace('postgres://', 'postgresql+psycopg2://', 1)
elif app.config['SQLALCHEMY_DATABASE_URI'].startswith('postgresql://'):
    app.config['SQLALCHEMY_DATABASE_URI'] = app.config['SQLALCHEMY_DATABASE_URI'].replace('postgresql://', 'postgresql+psycopg2://', 1)
if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
    # Concurrent writers wait for the lock instead of failing immediately
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'connect_args': {'timeout': float(os.environ.get('DATABASE_TIMEOUT', 30))}
    }
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# Secure session configuration
app.config['SESSION_COOKIE_SECURE'] = os.environ.get('FLASK_ENV') == 'production'
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=24)

app.config['MAX_ACTIVE_GIGS'] = int(os.environ.get('MAX_ACTIVE_GIGS', 10))
app.config['RATE_LIMIT_ENABLED'] = os.environ.get('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
app.config['LOG_DIR'] = os.environ.get('LOG_DIR')
app.config['SIEM_SYSLOG_HOST'] = os.environ.get('SIEM_SYSLOG_HOST')
app.config['SIEM_SYSLOG_PORT'] = int(os.environ.get('SIEM_SYSLOG_PORT', 514))
app.config['NOTIFICATION_WEBHOOK_URL'] = os.environ.get('NOTIFICATION_WEBHOOK_URL')
app.config['NOTIFICATION_DISPATCH_INTERVAL'] = int(os.environ.get('NOTIFICATION_DISPATCH_INTERVAL', 30))
app.config['NOTIFICATION_BATCH_SIZE'] = int(os.environ.get('NOTIFICATION_BATCH_SIZE', 100))
app.config['NOTIFICATION_MAX_ATTEMPTS'] = int(os.environ.get('NOTIFICATION_MAX_ATTEMPTS', 5))

db = SQLAlchemy(app)

# Restrict CORS to known origins in production
allowed_origins = os.environ.get('ALLOWED_ORIGINS', '*').split(',')
CORS(app,
     origins=allowed_origins,
     supports_credentials=True,
     max_age=86400)

rate_limiter = RateLimiter()
api_rate_limit = rate_limiter.api_rate_limit

security_logger = init_security_logger(app)


# Security headers middleware
@app.after_request
def set_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
    return response


# Login required decorator for API routes
def login_required(f):
    """Decorator to require an authenticated wallet session"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            security_logger.log_authorization(
                'unauthenticated_request',
                f"Unauthenticated call to {request.path}"
            )
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


def _load_json_list(value):
    if not value:
        return []
    try:
        loaded = json.loads(value)
    except (TypeError, ValueError):
        return []
    return loaded if isinstance(loaded, list) else []


def _iso(value):
    return value.isoformat() if value else None


def _search_index(values):
    return '\n'.join(v.lower() for v in values)


# Database Models
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    wallet_address = db.Column(db.String(64), unique=True, nullable=False)
    username = db.Column(db.String(30), unique=True)  # stored lower-case
    name = db.Column(db.String(120))
    bio = db.Column(db.Text)
    avatar_url = db.Column(db.String(500))
    role = db.Column(db.String(20), nullable=False, default='FREELANCER')  # FREELANCER, HIRER, ADMIN
    rating = db.Column(db.Float, default=0.0)
    is_verified = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def display_name(self):
        return self.name or self.username or self.wallet_address

    def to_public_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'username': self.username,
            'avatarUrl': self.avatar_url,
            'rating': self.rating,
            'isVerified': self.is_verified
        }


class Category(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    icon = db.Column(db.String(50))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'icon': self.icon
        }


class Gig(db.Model):
    """Freelancer service listing sold as 1-3 fixed-price packages"""
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=False)
    freelancer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='ACTIVE')  # ACTIVE, PAUSED, INACTIVE
    packages = db.Column(db.Text, nullable=False, default='[]')  # JSON list, ascending by price
    deliverables = db.Column(db.Text)  # JSON list
    gallery = db.Column(db.Text)  # JSON list
    tags = db.Column(db.Text)  # JSON list
    # Lower-case tags joined by newlines; a LIKE match cannot span two tags
    tag_index = db.Column(db.Text, nullable=False, default='')
    # Derived from packages on every write so listings can filter in SQL
    min_price = db.Column(db.Float, nullable=False, default=0.0)
    max_price = db.Column(db.Float, nullable=False, default=0.0)
    min_delivery_days = db.Column(db.Integer, nullable=False, default=0)
    rating = db.Column(db.Float, default=0.0)
    review_count = db.Column(db.Integer, nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)
    view_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    freelancer = db.relationship('User', foreign_keys=[freelancer_id])
    category = db.relationship('Category')

    def get_packages(self):
        return _load_json_list(self.packages)

    def set_packages(self, packages):
        """Store the package list and refresh the derived price/delivery columns"""
        self.packages = json.dumps(packages)
        prices = [p['price'] for p in packages]
        days = [p['deliveryDays'] for p in packages]
        self.min_price = min(prices) if prices else 0.0
        self.max_price = max(prices) if prices else 0.0
        self.min_delivery_days = min(days) if days else 0

    def set_tags(self, tags):
        self.tags = json.dumps(tags)
        self.tag_index = _search_index(tags)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'packages': self.get_packages(),
            'deliverables': _load_json_list(self.deliverables),
            'gallery': _load_json_list(self.gallery),
            'tags': _load_json_list(self.tags),
            'minPrice': self.min_price,
            'maxPrice': self.max_price,
            'minDelivery': self.min_delivery_days,
            'rating': self.rating,
            'reviewCount': self.review_count,
            'orderCount': self.order_count,
            'totalOrders': self.order_count,
            'viewCount': self.view_count,
            'freelancerId': self.freelancer_id,
            'freelancer': self.freelancer.to_public_dict() if self.freelancer else None,
            'categoryId': self.category_id,
            'category': self.category.to_dict() if self.category else None,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class Job(db.Model):
    """Hirer-posted work that freelancers apply to"""
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    budget = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default='USDC')
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'))
    hirer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    assigned_freelancer_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    status = db.Column(db.String(20), nullable=False, default='OPEN')  # OPEN, IN_PROGRESS, COMPLETED, CANCELLED
    skills = db.Column(db.Text)  # JSON list
    skill_index = db.Column(db.Text, nullable=False, default='')
    application_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    hirer = db.relationship('User', foreign_keys=[hirer_id])
    category = db.relationship('Category')

    def set_skills(self, skills):
        self.skills = json.dumps(skills)
        self.skill_index = _search_index(skills)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'budget': self.budget,
            'currency': self.currency,
            'categoryId': self.category_id,
            'hirerId': self.hirer_id,
            'hirer': self.hirer.to_public_dict() if self.hirer else None,
            'assignedFreelancerId': self.assigned_freelancer_id,
            'status': self.status,
            'skills': _load_json_list(self.skills),
            'applicationCount': self.application_count,
            'createdAt': _iso(self.created_at)
        }


class Application(db.Model):
    """
    Freelancer engagement record, stored in one table and tagged by kind:
    gig orders are accepted on creation, job applications wait for the hirer
    """
    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(30), nullable=False)
    freelancer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    cover_letter = db.Column(db.Text)
    proposed_budget = db.Column(db.Float)
    estimated_days = db.Column(db.Integer)
    is_accepted = db.Column(db.Boolean, nullable=False, default=False)
    accepted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    freelancer = db.relationship('User', foreign_keys=[freelancer_id])

    __mapper_args__ = {'polymorphic_on': kind}

    def to_dict(self):
        return {
            'id': self.id,
            'kind': self.kind,
            'freelancerId': self.freelancer_id,
            'coverLetter': self.cover_letter,
            'proposedBudget': self.proposed_budget,
            'estimatedDays': self.estimated_days,
            'isAccepted': self.is_accepted,
            'acceptedAt': _iso(self.accepted_at),
            'createdAt': _iso(self.created_at)
        }


class GigOrder(Application):
    gig_id = db.Column(db.Integer, db.ForeignKey('gig.id'), index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey('user.id'), index=True)
    package_index = db.Column(db.Integer)
    package_name = db.Column(db.String(50))

    gig = db.relationship('Gig', foreign_keys=[gig_id])
    buyer = db.relationship('User', foreign_keys=[buyer_id])
    payment = db.relationship('Payment', foreign_keys='Payment.order_id', uselist=False, viewonly=True)

    __mapper_args__ = {'polymorphic_identity': 'gig_order'}

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'gigId': self.gig_id,
            'buyerId': self.buyer_id,
            'packageIndex': self.package_index,
            'packageName': self.package_name
        })
        return data


class JobApplication(Application):
    job_id = db.Column(db.Integer, db.ForeignKey('job.id'), index=True)

    job = db.relationship('Job', foreign_keys=[job_id])

    __mapper_args__ = {'polymorphic_identity': 'job_application'}

    def to_dict(self):
        data = super().to_dict()
        data['jobId'] = self.job_id
        return data


class Payment(db.Model):
    """Escrowed USDC payment from buyer to freelancer"""
    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default='USDC')
    status = db.Column(db.String(20), nullable=False, default='ESCROW')  # ESCROW, RELEASED, REFUNDED
    from_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    to_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    gig_id = db.Column(db.Integer, db.ForeignKey('gig.id'))
    order_id = db.Column(db.Integer, db.ForeignKey('application.id'))
    escrow_address = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    released_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'amount': self.amount,
            'currency': self.currency,
            'status': self.status,
            'fromUserId': self.from_user_id,
            'toUserId': self.to_user_id,
            'gigId': self.gig_id,
            'orderId': self.order_id,
            'escrowAddress': self.escrow_address,
            'createdAt': _iso(self.created_at),
            'releasedAt': _iso(self.released_at)
        }


class Notification(db.Model):
    """User notification; undelivered rows form the dispatch outbox"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    notification_type = db.Column(db.String(50), nullable=False)  # GIG_ORDER, ORDER_CONFIRMATION, JOB_APPLICATION, ...
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text)
    data = db.Column(db.Text)  # JSON payload
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime, index=True)
    delivery_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.notification_type,
            'title': self.title,
            'message': self.message,
            'data': json.loads(self.data) if self.data else None,
            'isRead': self.is_read,
            'createdAt': _iso(self.created_at)
        }


# Services
order_service = OrderService(
    db, Gig, User, GigOrder, Payment, Notification,
    security_log=security_logger
)
gig_service = GigService(db, Gig, User, Category, max_active_gigs=app.config['MAX_ACTIVE_GIGS'])
job_service = JobService(db, Job, Application, JobApplication, User, Category, Notification)

if app.config['NOTIFICATION_WEBHOOK_URL']:
    notification_sink = WebhookNotificationSink(app.config['NOTIFICATION_WEBHOOK_URL'])
else:
    notification_sink = LogNotificationSink()
notification_dispatcher = NotificationDispatcher(
    db, Notification, notification_sink,
    batch_size=app.config['NOTIFICATION_BATCH_SIZE'],
    max_attempts=app.config['NOTIFICATION_MAX_ATTEMPTS']
)


# Error handlers
@app.errorhandler(MarketplaceError)
def handle_marketplace_error(e):
    if e.status_code >= 500:
        app.logger.error(f"{request.method} {request.path} failed: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({
        'error': 'Validation error',
        'details': e.errors(include_url=False, include_context=False)
    }), 400


@app.errorhandler(InternalServerError)
def handle_internal_error(e):
    original = getattr(e, 'original_exception', None) or e
    app.logger.error(f"Unhandled error on {request.method} {request.path}: {original!r}")
    return jsonify({'error': 'Internal server error'}), 500


# ============================================================================
# GIGS
# ============================================================================

@app.route('/api/gigs', methods=['GET'])
@api_rate_limit(requests_per_minute=120)
def get_gigs():
    query = GigQuery.model_validate(form_args(request.args))
    gigs, pagination = gig_service.list_gigs(query)
    return jsonify({
        'gigs': [g.to_dict() for g in gigs],
        'pagination': pagination
    })


@app.route('/api/gigs', methods=['POST'])
@api_rate_limit(requests_per_minute=30)
@login_required
def create_gig():
    payload = CreateGigRequest.model_validate(request.get_json(silent=True) or {})
    gig = gig_service.create_gig(session['user_id'], payload)
    return jsonify({'gig': gig.to_dict()}), 201


@app.route('/api/gigs/<int:gig_id>', methods=['GET'])
def get_gig(gig_id):
    gig = gig_service.get_gig(gig_id)
    return jsonify({'gig': gig.to_dict()})


@app.route('/api/gigs/<int:gig_id>', methods=['PUT'])
@api_rate_limit(requests_per_minute=30)
@login_required
def update_gig(gig_id):
    payload = UpdateGigRequest.model_validate(request.get_json(silent=True) or {})
    gig = gig_service.update_gig(session['user_id'], gig_id, payload)
    return jsonify({'gig': gig.to_dict()})


@app.route('/api/gigs/<int:gig_id>/order', methods=['POST'])
@api_rate_limit(requests_per_minute=20)
@login_required
def order_gig(gig_id):
    """Order one package of a gig; the payment is held in escrow"""
    data = OrderGigRequest.model_validate(request.get_json(silent=True) or {})
    result = order_service.place_order(
        session['user_id'],
        gig_id,
        data.package_index,
        data.package_data
    )
    return jsonify(result.to_dict())


# ============================================================================
# ORDERS & ESCROW
# ============================================================================

@app.route('/api/orders', methods=['GET'])
@login_required
def get_orders():
    query = OrderListQuery.model_validate(form_args(request.args))
    orders = order_service.list_orders(session['user_id'], query.role)
    return jsonify({'orders': orders})


@app.route('/api/payments/<int:payment_id>/release', methods=['POST'])
@api_rate_limit(requests_per_minute=20)
@login_required
def release_payment(payment_id):
    """Release escrowed funds to the freelancer (buyer action after delivery)"""
    payment = order_service.release_payment(session['user_id'], payment_id)
    return jsonify({
        'message': 'Payment released successfully',
        'payment': payment.to_dict()
    })


# ============================================================================
# JOBS
# ============================================================================

@app.route('/api/jobs', methods=['GET'])
@api_rate_limit(requests_per_minute=120)
def get_jobs():
    query = JobQuery.model_validate(form_args(request.args))
    jobs, pagination = job_service.list_jobs(query)
    return jsonify({
        'jobs': [j.to_dict() for j in jobs],
        'pagination': pagination
    })


@app.route('/api/jobs', methods=['POST'])
@api_rate_limit(requests_per_minute=30)
@login_required
def create_job():
    payload = CreateJobRequest.model_validate(request.get_json(silent=True) or {})
    job = job_service.create_job(session['user_id'], payload)
    return jsonify({'job': job.to_dict()}), 201


@app.route('/api/jobs/<int:job_id>/apply', methods=['POST'])
@api_rate_limit(requests_per_minute=20)
@login_required
def apply_to_job(job_id):
    payload = ApplyToJobRequest.model_validate(request.get_json(silent=True) or {})
    application = job_service.apply(session['user_id'], job_id, payload)
    return jsonify({
        'message': 'Application submitted successfully',
        'application': application.to_dict()
    }), 201


@app.route('/api/applications/<int:application_id>/accept', methods=['POST'])
@login_required
def accept_application(application_id):
    application = job_service.accept_application(session['user_id'], application_id)
    return jsonify({
        'message': 'Application accepted',
        'application': application.to_dict()
    })


# ============================================================================
# USERS, CATEGORIES, NOTIFICATIONS
# ============================================================================

@app.route('/api/users/check-username', methods=['POST'])
@api_rate_limit(requests_per_minute=60)
def check_username():
    try:
        data = CheckUsernameRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({
            'error': 'Invalid username format',
            'details': e.errors(include_url=False, include_context=False)
        }), 400

    existing = User.query.filter(db.func.lower(User.username) == data.username.lower()).first()
    available = existing is None

    return jsonify({
        'username': data.username,
        'available': available,
        'message': 'Username is available' if available else 'Username is already taken'
    })


@app.route('/api/categories', methods=['GET'])
def get_categories():
    categories = Category.query.filter_by(is_active=True).order_by(Category.name).all()
    return jsonify({'categories': [c.to_dict() for c in categories]})


@app.route('/api/notifications', methods=['GET'])
@login_required
def get_notifications():
    """Get user notifications"""
    user_id = session['user_id']
    unread_only = request.args.get('unreadOnly', 'false').lower() == 'true'

    query = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)

    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(20).all()
    unread_count = Notification.query.filter_by(user_id=user_id, is_read=False).count()

    return jsonify({
        'notifications': [n.to_dict() for n in notifications],
        'unreadCount': unread_count
    })


@app.route('/api/notifications/mark-read', methods=['POST'])
@login_required
def mark_notifications_read():
    """Mark notifications as read"""
    user_id = session['user_id']
    data = MarkReadRequest.model_validate(request.get_json(silent=True) or {})

    query = Notification.query.filter(Notification.user_id == user_id, Notification.is_read.is_(False))
    if data.ids:
        query = query.filter(Notification.id.in_(data.ids))
    updated = query.update({'is_read': True, 'read_at': datetime.utcnow()}, synchronize_session=False)

    db.session.commit()
    return jsonify({'success': True, 'updated': updated})


# ============================================================================
# DATABASE SETUP
# ============================================================================

DEFAULT_CATEGORIES = [
    ('Smart Contract Development', 'smart-contracts', 'Solidity, Rust and Anchor contracts', 'code'),
    ('DeFi Development', 'defi', 'DEXs, lending, staking and yield protocols', 'trending-up'),
    ('NFT Development', 'nft', 'Collections, minting sites and marketplaces', 'image'),
    ('Solana Development', 'solana', 'Programs and tooling for Solana', 'zap'),
    ('Web3 Frontend', 'web3-frontend', 'dApp interfaces and wallet integrations', 'monitor'),
    ('Web3 UI/UX Design', 'web3-design', 'Product and interface design for dApps', 'palette'),
    ('Web3 Security', 'security', 'Smart contract audits and security reviews', 'shield'),
    ('Crypto Trading Bots', 'trading-bots', 'Automated trading and market making', 'cpu'),
    ('DAO Development', 'dao', 'Governance, treasury and voting tooling', 'users'),
    ('Tokenomics', 'tokenomics', 'Token design and economic modelling', 'pie-chart'),
    ('Web3 Marketing', 'web3-marketing', 'Community growth and launch campaigns', 'megaphone'),
    ('Crypto Analysis', 'crypto-analysis', 'Research, on-chain analytics and reports', 'bar-chart'),
]


def seed_default_categories():
    """Add the default categories that are missing"""
    existing = {slug for (slug,) in db.session.query(Category.slug).all()}
    added = 0
    for name, slug, description, icon in DEFAULT_CATEGORIES:
        if slug not in existing:
            db.session.add(Category(name=name, slug=slug, description=description, icon=icon))
            added += 1
    if added:
        db.session.commit()
        app.logger.info(f"Added {added} default categories")


def init_database():
    """Create tables and default categories"""
    db.create_all()
    seed_default_categories()


with app.app_context():
    init_database()

if os.environ.get('ENABLE_SCHEDULER', 'false').lower() == 'true':
    init_scheduler(app, notification_dispatcher, app.config['NOTIFICATION_DISPATCH_INTERVAL'])

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG', 'False') == 'True')
