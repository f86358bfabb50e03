"""
Test fixtures and factories for creating test data.
Uses factory_boy for consistent test data generation.
"""
import factory
from factory.django import DjangoModelFactory

from recruiting.models import (
    Candidate,
    CandidateExternalProfile,
    CandidateMatch,
    Job,
    JobRequirement,
    ProcessTracker,
)


class ProcessTrackerFactory(DjangoModelFactory):
    """Factory for upload trackers"""
    class Meta:
        model = ProcessTracker

    uploaded_filename = factory.Sequence(lambda n: f'resume{n}.pdf')
    total_files = 1
    correlation_id = factory.Sequence(lambda n: f'upload-{n}')
    initiated_by = 'tester'


class JobFactory(DjangoModelFactory):
    """Factory for queued jobs"""
    class Meta:
        model = Job

    job_type = Job.TYPE_RESUME_PROCESSING
    status = Job.STATUS_PENDING
    priority = Job.PRIORITY_NORMAL
    filename = factory.Sequence(lambda n: f'resume{n}.pdf')
    metadata = factory.LazyAttribute(lambda obj: {'filename': obj.filename})


class CandidateFactory(DjangoModelFactory):
    """Factory for analyzed candidates"""
    class Meta:
        model = Candidate

    name = factory.Faker('name')
    email = factory.Sequence(lambda n: f'candidate{n}@example.com')
    resume_filename = factory.Sequence(lambda n: f'candidate{n}.pdf')
    resume_content = 'Senior engineer.\n\nSkills: Python, Django, PostgreSQL'
    experience_summary = 'Backend engineer building APIs'
    skills = 'Python, Django, PostgreSQL'
    domain_knowledge = 'Fintech'
    academic_background = 'BSc Computer Science'
    years_of_experience = 6
    current_company = 'Acme'


class JobRequirementFactory(DjangoModelFactory):
    """Factory for open positions"""
    class Meta:
        model = JobRequirement

    title = factory.Faker('job')
    description = 'Build and run backend services'
    required_skills = 'Python, Django'
    min_experience_years = 3
    max_experience_years = 8


class CandidateMatchFactory(DjangoModelFactory):
    class Meta:
        model = CandidateMatch

    candidate = factory.SubFactory(CandidateFactory)
    job_requirement = factory.SubFactory(JobRequirementFactory)
    match_score = 60


class ExternalProfileFactory(DjangoModelFactory):
    class Meta:
        model = CandidateExternalProfile

    candidate = factory.SubFactory(CandidateFactory)
    source = CandidateExternalProfile.SOURCE_INTERNET_SEARCH
    status = CandidateExternalProfile.STATUS_SUCCESS
    enriched_summary = 'Speaker at PyCon, maintains an open source payments library.'
