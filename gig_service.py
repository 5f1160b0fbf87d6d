"""
TaskFi Gig Service
Gig creation and editing rules plus the browse/filter query
"""

import json
import logging
import math
from typing import Dict, List, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from errors import Forbidden, InternalError, InvalidOperation, NotFound, Unauthorized

logger = logging.getLogger(__name__)

GIG_MANAGER_ROLES = ('FREELANCER', 'ADMIN')
MAX_PAGE_SIZE = 50
LIKE_ESCAPE = '\\'


def can_manage_gigs(role) -> bool:
    return role in GIG_MANAGER_ROLES


def contains_pattern(term):
    """Substring LIKE pattern with %, _ and the escape char taken literally"""
    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace('%', LIKE_ESCAPE + '%').replace('_', LIKE_ESCAPE + '_')
    return f'%{escaped}%'


def text_search(term, columns, index_column):
    """
    OR of substring matches over plain text columns plus one newline-joined
    list column (tags, skills). A term containing a newline could match across
    two list entries, so it is only tried against the text columns.
    """
    pattern = contains_pattern(term.lower())
    clauses = [column.ilike(pattern, escape=LIKE_ESCAPE) for column in columns]
    if '\n' not in term:
        clauses.append(index_column.like(pattern, escape=LIKE_ESCAPE))
    return or_(*clauses)


def ensure_ascending_prices(packages):
    """Each package must cost strictly more than the one before it"""
    for i in range(1, len(packages)):
        if packages[i].price <= packages[i - 1].price:
            raise InvalidOperation('Package prices must be in ascending order')


class GigService:
    """Write rules and listing query for gigs"""

    # Sort keys accepted by the listing endpoint mapped to Gig attributes
    SORT_COLUMNS = {
        'createdAt': 'created_at',
        'rating': 'rating',
        'orderCount': 'order_count',
        'viewCount': 'view_count',
    }

    def __init__(self, db, Gig, User, Category, max_active_gigs=10):
        self.db = db
        self.Gig = Gig
        self.User = User
        self.Category = Category
        self.max_active_gigs = max_active_gigs

    def _get_manager(self, user_id):
        if not user_id:
            raise Unauthorized()
        user = self.db.session.get(self.User, user_id)
        if user is None:
            raise NotFound('User not found')
        if not can_manage_gigs(user.role):
            raise Forbidden('Only freelancers can create gigs')
        return user

    def _get_active_category(self, category_id):
        category = self.db.session.get(self.Category, category_id)
        if category is None or not category.is_active:
            raise NotFound('Invalid or inactive category')
        return category

    def _ensure_below_active_limit(self, freelancer_id):
        active_count = self.Gig.query.filter_by(freelancer_id=freelancer_id, status='ACTIVE').count()
        if active_count >= self.max_active_gigs:
            raise InvalidOperation(f'Maximum active gigs limit reached ({self.max_active_gigs})')

    def _commit(self, action):
        try:
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"{action} failed: {str(e)}")
            raise InternalError() from e

    def create_gig(self, user_id, payload):
        """
        Create an ACTIVE gig for a freelancer.

        Args:
            user_id: Authenticated user id
            payload: CreateGigRequest

        Returns:
            The new Gig
        """
        user = self._get_manager(user_id)
        self._get_active_category(payload.category_id)
        self._ensure_below_active_limit(user.id)
        ensure_ascending_prices(payload.packages)

        gig = self.Gig(
            title=payload.title.strip(),
            description=payload.description.strip(),
            category_id=payload.category_id,
            freelancer_id=user.id,
            status='ACTIVE',
            deliverables=json.dumps(payload.deliverables),
            gallery=json.dumps(payload.gallery)
        )
        gig.set_tags(payload.tags)
        gig.set_packages([p.model_dump(by_alias=True) for p in payload.packages])

        self.db.session.add(gig)
        self._commit('Create gig')
        logger.info(f"Gig {gig.id} created by freelancer {user.id}")
        return gig

    def update_gig(self, user_id, gig_id, payload):
        """Apply the fields present in an UpdateGigRequest; owner or admin only"""
        if not user_id:
            raise Unauthorized()

        gig = self.db.session.get(self.Gig, gig_id)
        if gig is None:
            raise NotFound('Gig not found')

        user = self.db.session.get(self.User, user_id)
        if user is None:
            raise NotFound('User not found')
        if gig.freelancer_id != user.id and user.role != 'ADMIN':
            raise Forbidden('Only the gig owner can update this gig')

        fields = {name for name in payload.model_fields_set if getattr(payload, name) is not None}

        # Validate everything before touching the gig
        if 'packages' in fields:
            ensure_ascending_prices(payload.packages)
        if 'category_id' in fields:
            self._get_active_category(payload.category_id)
        if 'status' in fields and payload.status == 'ACTIVE' and gig.status != 'ACTIVE':
            self._ensure_below_active_limit(gig.freelancer_id)

        if 'packages' in fields:
            gig.set_packages([p.model_dump(by_alias=True) for p in payload.packages])
        if 'category_id' in fields:
            gig.category_id = payload.category_id
        if 'status' in fields:
            gig.status = payload.status

        for name in ('title', 'description'):
            if name in fields:
                setattr(gig, name, getattr(payload, name).strip())

        if 'tags' in fields:
            gig.set_tags(payload.tags)

        for name in ('deliverables', 'gallery'):
            if name in fields:
                setattr(gig, name, json.dumps(getattr(payload, name)))

        self._commit('Update gig')
        return gig

    def get_gig(self, gig_id, count_view=True):
        gig = self.db.session.get(self.Gig, gig_id)
        if gig is None:
            raise NotFound('Gig not found')

        if count_view:
            self.Gig.query.filter(self.Gig.id == gig_id).update(
                {self.Gig.view_count: self.Gig.view_count + 1}, synchronize_session=False
            )
            self._commit('Record gig view')
        return gig

    def build_listing_query(self, query):
        """Apply every filter of a GigQuery to a SQL query; nothing is filtered in Python"""
        Gig = self.Gig
        q = Gig.query.filter(Gig.status == (query.status or 'ACTIVE'))

        if query.category:
            if query.category.isdigit():
                q = q.filter(Gig.category_id == int(query.category))
            else:
                q = q.join(self.Category, Gig.category_id == self.Category.id).filter(
                    self.Category.slug == query.category
                )

        if query.freelancer:
            q = q.filter(Gig.freelancer_id == query.freelancer)

        term = (query.search or '').strip()
        if term:
            q = q.filter(text_search(term, (Gig.title, Gig.description), Gig.tag_index))

        if query.rating is not None:
            q = q.filter(Gig.rating >= query.rating)
        if query.min_price is not None:
            q = q.filter(Gig.min_price >= query.min_price)
        if query.max_price is not None:
            q = q.filter(Gig.max_price <= query.max_price)
        if query.delivery_time is not None:
            q = q.filter(Gig.min_delivery_days <= query.delivery_time)

        return q

    def _ordering(self, query):
        Gig = self.Gig
        if query.sort_by == 'price':
            # Cheapest entry point first, or most expensive tier first
            if query.sort_order == 'asc':
                return [Gig.min_price.asc(), Gig.id.asc()]
            return [Gig.max_price.desc(), Gig.id.desc()]

        column = getattr(Gig, self.SORT_COLUMNS[query.sort_by])
        if query.sort_order == 'asc':
            return [column.asc(), Gig.id.asc()]
        return [column.desc(), Gig.id.desc()]

    def list_gigs(self, query) -> Tuple[List, Dict]:
        """
        Run a GigQuery.

        Returns:
            (gigs on the requested page, pagination dict whose total and pages
            count the full filtered set)
        """
        limit = min(query.limit, MAX_PAGE_SIZE)
        page = query.page

        q = self.build_listing_query(query)
        total = q.count()
        gigs = q.order_by(*self._ordering(query)).offset((page - 1) * limit).limit(limit).all()

        return gigs, {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': math.ceil(total / limit) if total else 0,
        }
