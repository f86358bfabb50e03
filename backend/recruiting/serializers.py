from rest_framework import serializers

from recruiting.models import CandidateMatch, Job, MatchAudit, ProcessTracker


class ProcessTrackerSerializer(serializers.ModelSerializer):
    progress_percent = serializers.ReadOnlyField()

    class Meta:
        model = ProcessTracker
        fields = [
            "id", "uploaded_filename", "status", "total_files", "processed_files", "failed_files",
            "progress_percent", "message", "correlation_id", "initiated_by", "created_at", "updated_at",
            "completed_at",
        ]
        read_only_fields = fields


class JobSerializer(serializers.ModelSerializer):
    is_dead_lettered = serializers.ReadOnlyField()

    class Meta:
        model = Job
        fields = [
            "id", "job_type", "status", "priority", "filename", "metadata", "correlation_id",
            "scheduled_for", "retry_count", "max_retries", "is_dead_lettered", "assigned_to",
            "error_message", "created_at", "updated_at", "started_at", "completed_at", "heartbeat_at",
        ]
        read_only_fields = fields


class MatchAuditSerializer(serializers.ModelSerializer):
    class Meta:
        model = MatchAudit
        fields = [
            "id", "job_requirement", "job_title", "total_candidates", "successful_matches",
            "shortlisted_count", "average_match_score", "highest_match_score", "duration_ms",
            "estimated_tokens_used", "status", "initiated_by", "error_message", "match_summaries",
            "initiated_at", "completed_at",
        ]
        read_only_fields = fields


class CandidateMatchSerializer(serializers.ModelSerializer):
    candidate_name = serializers.ReadOnlyField(source='candidate.name')

    class Meta:
        model = CandidateMatch
        fields = [
            "id", "candidate", "candidate_name", "job_requirement", "match_score", "skills_score",
            "experience_score", "education_score", "domain_score", "explanation", "strengths", "gaps",
            "is_shortlisted", "is_selected", "match_pass", "matched_at",
        ]
        read_only_fields = fields


class MatchRequestSerializer(serializers.Serializer):
    run_async = serializers.BooleanField(required=False, default=False)
