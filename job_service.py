"""
TaskFi Job Service
Hirer-posted jobs and the applications freelancers send to them.
Unlike gig orders, job applications wait for the hirer to accept them.
"""

import json
import logging
import math
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from errors import (
    Forbidden,
    InternalError,
    InvalidOperation,
    InvalidState,
    NotFound,
    Unauthorized,
)
from gig_service import text_search

logger = logging.getLogger(__name__)

JOB_POSTER_ROLES = ('HIRER', 'ADMIN')
JOB_APPLICANT_ROLES = ('FREELANCER', 'ADMIN')
MAX_PAGE_SIZE = 50


class JobService:

    def __init__(self, db, Job, Application, JobApplication, User, Category, Notification):
        self.db = db
        self.Job = Job
        self.Application = Application
        self.JobApplication = JobApplication
        self.User = User
        self.Category = Category
        self.Notification = Notification

    def _get_user(self, user_id, roles, message):
        if not user_id:
            raise Unauthorized()
        user = self.db.session.get(self.User, user_id)
        if user is None:
            raise NotFound('User not found')
        if user.role not in roles:
            raise Forbidden(message)
        return user

    def _commit(self, action):
        try:
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"{action} failed: {str(e)}")
            raise InternalError() from e

    def create_job(self, user_id, payload):
        hirer = self._get_user(user_id, JOB_POSTER_ROLES, 'Only hirers can post jobs')

        if payload.category_id is not None:
            category = self.db.session.get(self.Category, payload.category_id)
            if category is None or not category.is_active:
                raise NotFound('Invalid or inactive category')

        job = self.Job(
            title=payload.title.strip(),
            description=payload.description.strip(),
            budget=payload.budget,
            category_id=payload.category_id,
            hirer_id=hirer.id
        )
        job.set_skills(payload.skills)
        self.db.session.add(job)
        self._commit('Create job')
        logger.info(f"Job {job.id} posted by hirer {hirer.id}")
        return job

    def list_jobs(self, query):
        q = self.Job.query.filter(self.Job.status == 'OPEN')

        if query.category:
            if query.category.isdigit():
                q = q.filter(self.Job.category_id == int(query.category))
            else:
                q = q.join(self.Category, self.Job.category_id == self.Category.id).filter(
                    self.Category.slug == query.category
                )

        term = (query.search or '').strip()
        if term:
            q = q.filter(text_search(term, (self.Job.title, self.Job.description), self.Job.skill_index))

        limit = min(query.limit, MAX_PAGE_SIZE)
        total = q.count()
        jobs = q.order_by(self.Job.created_at.desc(), self.Job.id.desc()) \
            .offset((query.page - 1) * limit).limit(limit).all()

        return jobs, {
            'page': query.page,
            'limit': limit,
            'total': total,
            'pages': math.ceil(total / limit) if total else 0,
        }

    def apply(self, user_id, job_id, payload):
        """Submit a pending application to an OPEN job"""
        freelancer = self._get_user(user_id, JOB_APPLICANT_ROLES, 'Only freelancers can apply to jobs')

        job = self.db.session.get(self.Job, job_id)
        if job is None:
            raise NotFound('Job not found')

        if job.status != 'OPEN':
            raise InvalidState('This job is no longer accepting applications')

        if job.hirer_id == freelancer.id:
            raise InvalidOperation('Cannot apply to your own job')

        existing = self.JobApplication.query.filter_by(job_id=job_id, freelancer_id=freelancer.id).first()
        if existing:
            raise InvalidOperation('Already applied to this job')

        application = self.JobApplication(
            job_id=job_id,
            freelancer_id=freelancer.id,
            cover_letter=payload.cover_letter.strip(),
            proposed_budget=payload.proposed_budget,
            estimated_days=payload.estimated_days,
            is_accepted=False
        )
        self.db.session.add(application)
        self.db.session.flush()

        self.Job.query.filter(self.Job.id == job_id).update(
            {self.Job.application_count: self.Job.application_count + 1}, synchronize_session=False
        )
        self.db.session.add(self.Notification(
            user_id=job.hirer_id,
            notification_type='JOB_APPLICATION',
            title='New Job Application',
            message=f'{freelancer.display_name} applied to "{job.title}"',
            data=json.dumps({'jobId': job_id, 'applicationId': application.id})
        ))
        self._commit('Apply to job')
        return application

    def accept_application(self, user_id, application_id):
        """Hirer accepts an application; the job moves to IN_PROGRESS"""
        if not user_id:
            raise Unauthorized()

        application = self.db.session.get(self.Application, application_id)
        if application is None:
            raise NotFound('Application not found')

        if not isinstance(application, self.JobApplication):
            raise InvalidOperation('Gig orders are accepted automatically')

        job = application.job
        if job.hirer_id != user_id:
            raise Forbidden('Only the job owner can accept applications')

        if application.is_accepted:
            raise InvalidState('Application already accepted')

        if job.status != 'OPEN':
            raise InvalidState('This job is no longer open')

        application.is_accepted = True
        application.accepted_at = datetime.utcnow()
        job.status = 'IN_PROGRESS'
        job.assigned_freelancer_id = application.freelancer_id

        self.db.session.add(self.Notification(
            user_id=application.freelancer_id,
            notification_type='APPLICATION_ACCEPTED',
            title='Application Accepted',
            message=f'Your application for "{job.title}" has been accepted',
            data=json.dumps({'jobId': job.id, 'applicationId': application.id})
        ))
        self._commit('Accept application')
        return application
