from django.contrib import admin

from .models import (
    Candidate,
    CandidateExternalProfile,
    CandidateMatch,
    Job,
    JobRequirement,
    MatchAudit,
    ProcessTracker,
    ResumeEmbedding,
)


# Queue
@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ['id', 'job_type', 'status', 'priority', 'filename', 'retry_count', 'max_retries',
                    'assigned_to', 'heartbeat_at', 'created_at']
    list_filter = ['job_type', 'status', 'priority']
    search_fields = ['id', 'filename', 'correlation_id', 'assigned_to']
    exclude = ['file_data']
    readonly_fields = ['version', 'created_at', 'updated_at', 'started_at', 'completed_at', 'heartbeat_at']


@admin.register(ProcessTracker)
class ProcessTrackerAdmin(admin.ModelAdmin):
    list_display = ['uploaded_filename', 'status', 'processed_files', 'failed_files', 'total_files', 'created_at']
    list_filter = ['status']
    search_fields = ['uploaded_filename', 'correlation_id', 'initiated_by']


# Candidates
@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'current_company', 'years_of_experience', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'email', 'skills', 'resume_filename']


@admin.register(ResumeEmbedding)
class ResumeEmbeddingAdmin(admin.ModelAdmin):
    list_display = ['candidate', 'section_type', 'source_filename', 'created_at']
    list_filter = ['section_type']
    search_fields = ['candidate__name', 'source_filename']
    exclude = ['embedding']


@admin.register(CandidateExternalProfile)
class CandidateExternalProfileAdmin(admin.ModelAdmin):
    list_display = ['candidate', 'source', 'status', 'last_fetched_at']
    list_filter = ['source', 'status']
    search_fields = ['candidate__name', 'profile_url']


# Matching
@admin.register(JobRequirement)
class JobRequirementAdmin(admin.ModelAdmin):
    list_display = ['title', 'location', 'min_experience_years', 'max_experience_years', 'is_active']
    list_filter = ['is_active']
    search_fields = ['title', 'required_skills']


@admin.register(CandidateMatch)
class CandidateMatchAdmin(admin.ModelAdmin):
    list_display = ['candidate', 'job_requirement', 'match_score', 'match_pass', 'is_shortlisted', 'is_selected']
    list_filter = ['is_shortlisted', 'is_selected', 'match_pass']
    search_fields = ['candidate__name', 'job_requirement__title']


@admin.register(MatchAudit)
class MatchAuditAdmin(admin.ModelAdmin):
    list_display = ['job_title', 'status', 'successful_matches', 'total_candidates', 'shortlisted_count',
                    'average_match_score', 'initiated_by', 'initiated_at']
    list_filter = ['status']
    search_fields = ['job_title', 'initiated_by']
