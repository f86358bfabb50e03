import uuid

from django.db import models
from django.utils import timezone


class Job(models.Model):
    """Persisted unit of asynchronous work claimed by scheduler workers."""

    TYPE_RESUME_PROCESSING = 'RESUME_PROCESSING'
    TYPE_BATCH_EMBEDDING = 'BATCH_EMBEDDING'
    TYPE_DATA_MIGRATION = 'DATA_MIGRATION'
    TYPE_CHOICES = [
        (TYPE_RESUME_PROCESSING, 'Resume processing'),
        (TYPE_BATCH_EMBEDDING, 'Batch embedding'),
        (TYPE_DATA_MIGRATION, 'Data migration'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_PROCESSING = 'PROCESSING'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_FAILED = 'FAILED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    PRIORITY_LOW = 0
    PRIORITY_NORMAL = 1
    PRIORITY_HIGH = 2
    PRIORITY_URGENT = 3
    PRIORITY_CHOICES = [
        (PRIORITY_LOW, 'Low'),
        (PRIORITY_NORMAL, 'Normal'),
        (PRIORITY_HIGH, 'High'),
        (PRIORITY_URGENT, 'Urgent'),
    ]

    DEFAULT_MAX_RETRIES = 3

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    job_type = models.CharField(max_length=32, choices=TYPE_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    priority = models.PositiveSmallIntegerField(choices=PRIORITY_CHOICES, default=PRIORITY_NORMAL)
    filename = models.CharField(max_length=255, blank=True)
    file_data = models.BinaryField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    correlation_id = models.CharField(max_length=100, blank=True, db_index=True)
    scheduled_for = models.DateTimeField(null=True, blank=True)
    retry_count = models.PositiveIntegerField(default=0)
    max_retries = models.PositiveIntegerField(default=DEFAULT_MAX_RETRIES)
    assigned_to = models.CharField(max_length=100, blank=True, null=True)
    error_message = models.TextField(blank=True)
    error_stack_trace = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    heartbeat_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-priority', 'created_at']
        indexes = [
            models.Index(fields=['job_type', 'status', '-priority', 'created_at'], name='job_claim_idx'),
            models.Index(fields=['status', 'heartbeat_at'], name='job_heartbeat_idx'),
            models.Index(fields=['status', 'completed_at'], name='job_completed_idx'),
        ]

    def __str__(self):
        return f"{self.job_type} {self.id} ({self.status})"

    @property
    def is_dead_lettered(self):
        return self.status == self.STATUS_FAILED and self.retry_count >= self.max_retries

    @property
    def can_retry(self):
        return self.retry_count < self.max_retries


class ProcessTracker(models.Model):
    """Aggregate progress of one resume upload batch."""

    STATUS_INITIATED = 'INITIATED'
    STATUS_EMBED_GENERATED = 'EMBED_GENERATED'
    STATUS_VECTOR_DB_UPDATED = 'VECTOR_DB_UPDATED'
    STATUS_RESUME_ANALYZED = 'RESUME_ANALYZED'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_FAILED = 'FAILED'
    STATUS_CHOICES = [
        (STATUS_INITIATED, 'Initiated'),
        (STATUS_EMBED_GENERATED, 'Embeddings generated'),
        (STATUS_VECTOR_DB_UPDATED, 'Vector store updated'),
        (STATUS_RESUME_ANALYZED, 'Resume analyzed'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    ]
    # Pipeline order of the non-terminal stages
    STAGE_ORDER = [
        STATUS_INITIATED,
        STATUS_EMBED_GENERATED,
        STATUS_VECTOR_DB_UPDATED,
        STATUS_RESUME_ANALYZED,
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    uploaded_filename = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_INITIATED)
    total_files = models.PositiveIntegerField(default=0)
    processed_files = models.PositiveIntegerField(default=0)
    failed_files = models.PositiveIntegerField(default=0)
    message = models.TextField(blank=True)
    correlation_id = models.CharField(max_length=100, blank=True, db_index=True)
    initiated_by = models.CharField(max_length=150, default='system')
    # Ids of jobs already counted, so a re-run job is never counted twice
    resolved_jobs = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.uploaded_filename or self.id} ({self.status})"

    @property
    def resolved_files(self):
        return self.processed_files + self.failed_files

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def progress_percent(self):
        if not self.total_files:
            return 0
        return round(self.resolved_files * 100 / self.total_files)


class Candidate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True, db_index=True)
    mobile = models.CharField(max_length=50, blank=True)
    resume_filename = models.CharField(max_length=255, blank=True)
    resume_content = models.TextField(blank=True)
    experience_summary = models.TextField(blank=True)
    skills = models.TextField(blank=True)
    domain_knowledge = models.TextField(blank=True)
    academic_background = models.TextField(blank=True)
    years_of_experience = models.PositiveIntegerField(null=True, blank=True)
    current_company = models.CharField(max_length=255, blank=True)
    github_url = models.URLField(blank=True)
    linkedin_url = models.URLField(blank=True)
    twitter_url = models.URLField(blank=True)
    analysis_confidence = models.FloatField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name or self.email or str(self.id)


class JobRequirement(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    required_skills = models.TextField(blank=True)
    min_experience_years = models.PositiveIntegerField(null=True, blank=True)
    max_experience_years = models.PositiveIntegerField(null=True, blank=True)
    required_education = models.TextField(blank=True)
    domain_requirements = models.TextField(blank=True)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class ResumeEmbedding(models.Model):
    """One embedded chunk of a resume; the similarity index rows."""

    SECTION_EDUCATION = 'education'
    SECTION_EXPERIENCE = 'experience'
    SECTION_SKILLS = 'skills'
    SECTION_PROJECTS = 'projects'
    SECTION_CERTIFICATIONS = 'certifications'
    SECTION_GENERAL = 'general'
    SECTION_CHOICES = [
        (SECTION_EDUCATION, 'Education'),
        (SECTION_EXPERIENCE, 'Experience'),
        (SECTION_SKILLS, 'Skills'),
        (SECTION_PROJECTS, 'Projects'),
        (SECTION_CERTIFICATIONS, 'Certifications'),
        (SECTION_GENERAL, 'General'),
    ]

    candidate = models.ForeignKey(
        Candidate,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='embeddings',
    )
    tracker = models.ForeignKey(
        ProcessTracker,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='embeddings',
    )
    source_filename = models.CharField(max_length=255, blank=True)
    content_chunk = models.TextField()
    section_type = models.CharField(max_length=20, choices=SECTION_CHOICES, default=SECTION_GENERAL)
    embedding = models.JSONField(default=list)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['candidate', 'section_type'], name='embedding_candidate_idx'),
        ]


class CandidateMatch(models.Model):
    SHORTLIST_THRESHOLD = 70

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    candidate = models.ForeignKey(Candidate, on_delete=models.CASCADE, related_name='matches')
    job_requirement = models.ForeignKey(JobRequirement, on_delete=models.CASCADE, related_name='matches')
    match_score = models.FloatField(default=0)
    skills_score = models.FloatField(default=0)
    experience_score = models.FloatField(default=0)
    education_score = models.FloatField(default=0)
    domain_score = models.FloatField(default=0)
    explanation = models.TextField(blank=True)
    strengths = models.TextField(blank=True)
    gaps = models.TextField(blank=True)
    is_shortlisted = models.BooleanField(default=False)
    is_selected = models.BooleanField(default=False)
    recruiter_notes = models.TextField(blank=True)
    match_pass = models.PositiveSmallIntegerField(default=1)
    matched_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-match_score']
        constraints = [
            models.UniqueConstraint(fields=['candidate', 'job_requirement'], name='unique_candidate_job_match'),
        ]

    def __str__(self):
        return f"{self.candidate} -> {self.job_requirement}: {self.match_score}"


class MatchAudit(models.Model):
    """One row per matching-engine run against a job requirement."""

    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_FAILED = 'FAILED'
    STATUS_CHOICES = [
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    ]

    TOKENS_PER_CANDIDATE = 1500

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    job_requirement = models.ForeignKey(
        JobRequirement,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='match_audits',
    )
    job_title = models.CharField(max_length=255, blank=True)
    total_candidates = models.PositiveIntegerField(default=0)
    successful_matches = models.PositiveIntegerField(default=0)
    shortlisted_count = models.PositiveIntegerField(default=0)
    average_match_score = models.FloatField(null=True, blank=True)
    highest_match_score = models.FloatField(null=True, blank=True)
    duration_ms = models.PositiveBigIntegerField(null=True, blank=True)
    estimated_tokens_used = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_IN_PROGRESS)
    initiated_by = models.CharField(max_length=150, default='system')
    error_message = models.TextField(blank=True)
    match_summaries = models.JSONField(default=list, blank=True)
    initiated_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-initiated_at']
        indexes = [
            models.Index(fields=['job_requirement', '-initiated_at'], name='audit_job_initiated_idx'),
        ]

    def __str__(self):
        return f"Match run {self.id} for {self.job_title} ({self.status})"


class CandidateExternalProfile(models.Model):
    """Cached enrichment data for one candidate from one external source."""

    SOURCE_GITHUB = 'GITHUB'
    SOURCE_LINKEDIN = 'LINKEDIN'
    SOURCE_TWITTER = 'TWITTER'
    SOURCE_INTERNET_SEARCH = 'INTERNET_SEARCH'
    SOURCE_CHOICES = [
        (SOURCE_GITHUB, 'GitHub'),
        (SOURCE_LINKEDIN, 'LinkedIn'),
        (SOURCE_TWITTER, 'Twitter / X'),
        (SOURCE_INTERNET_SEARCH, 'Internet search'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_SUCCESS = 'SUCCESS'
    STATUS_FAILED = 'FAILED'
    STATUS_NOT_FOUND = 'NOT_FOUND'
    STATUS_NOT_AVAILABLE = 'NOT_AVAILABLE'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_NOT_FOUND, 'Not found'),
        (STATUS_NOT_AVAILABLE, 'Not available'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    candidate = models.ForeignKey(Candidate, on_delete=models.CASCADE, related_name='external_profiles')
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    profile_url = models.URLField(max_length=500, blank=True)
    display_name = models.CharField(max_length=255, blank=True)
    bio = models.TextField(blank=True)
    location = models.CharField(max_length=255, blank=True)
    company = models.CharField(max_length=255, blank=True)
    public_repos = models.PositiveIntegerField(null=True, blank=True)
    followers = models.PositiveIntegerField(null=True, blank=True)
    repositories = models.JSONField(default=list, blank=True)
    enriched_summary = models.TextField(blank=True)
    error_message = models.TextField(blank=True)
    last_fetched_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['candidate', 'source'], name='unique_candidate_source_profile'),
        ]

    def __str__(self):
        return f"{self.candidate} [{self.source}] {self.status}"

    def is_fresh(self, ttl_days, now=None):
        if not self.last_fetched_at:
            return False
        now = now or timezone.now()
        age = now - self.last_fetched_at
        return age.total_seconds() < ttl_days * 86400
