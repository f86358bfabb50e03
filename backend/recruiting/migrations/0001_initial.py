# Generated migration for the recruiting app: job queue, ingestion and matching

import uuid
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        # Job queue
        migrations.CreateModel(
            name='Job',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('job_type', models.CharField(choices=[('RESUME_PROCESSING', 'Resume processing'), ('BATCH_EMBEDDING', 'Batch embedding'), ('DATA_MIGRATION', 'Data migration')], max_length=32)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('PROCESSING', 'Processing'), ('COMPLETED', 'Completed'), ('FAILED', 'Failed'), ('CANCELLED', 'Cancelled')], default='PENDING', max_length=16)),
                ('priority', models.PositiveSmallIntegerField(choices=[(0, 'Low'), (1, 'Normal'), (2, 'High'), (3, 'Urgent')], default=1)),
                ('filename', models.CharField(blank=True, max_length=255)),
                ('file_data', models.BinaryField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('correlation_id', models.CharField(blank=True, db_index=True, max_length=100)),
                ('scheduled_for', models.DateTimeField(blank=True, null=True)),
                ('retry_count', models.PositiveIntegerField(default=0)),
                ('max_retries', models.PositiveIntegerField(default=3)),
                ('assigned_to', models.CharField(blank=True, max_length=100, null=True)),
                ('error_message', models.TextField(blank=True)),
                ('error_stack_trace', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('heartbeat_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=0)),
            ],
            options={
                'ordering': ['-priority', 'created_at'],
                'indexes': [
                    models.Index(fields=['job_type', 'status', '-priority', 'created_at'], name='job_claim_idx'),
                    models.Index(fields=['status', 'heartbeat_at'], name='job_heartbeat_idx'),
                    models.Index(fields=['status', 'completed_at'], name='job_completed_idx'),
                ],
            },
        ),

        # Upload tracking
        migrations.CreateModel(
            name='ProcessTracker',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('uploaded_filename', models.CharField(blank=True, max_length=255)),
                ('status', models.CharField(choices=[('INITIATED', 'Initiated'), ('EMBED_GENERATED', 'Embeddings generated'), ('VECTOR_DB_UPDATED', 'Vector store updated'), ('RESUME_ANALYZED', 'Resume analyzed'), ('COMPLETED', 'Completed'), ('FAILED', 'Failed')], default='INITIATED', max_length=32)),
                ('total_files', models.PositiveIntegerField(default=0)),
                ('processed_files', models.PositiveIntegerField(default=0)),
                ('failed_files', models.PositiveIntegerField(default=0)),
                ('message', models.TextField(blank=True)),
                ('correlation_id', models.CharField(blank=True, db_index=True, max_length=100)),
                ('initiated_by', models.CharField(default='system', max_length=150)),
                ('resolved_jobs', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),

        # Candidates and requirements
        migrations.CreateModel(
            name='Candidate',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(blank=True, max_length=255)),
                ('email', models.EmailField(blank=True, db_index=True, max_length=254)),
                ('mobile', models.CharField(blank=True, max_length=50)),
                ('resume_filename', models.CharField(blank=True, max_length=255)),
                ('resume_content', models.TextField(blank=True)),
                ('experience_summary', models.TextField(blank=True)),
                ('skills', models.TextField(blank=True)),
                ('domain_knowledge', models.TextField(blank=True)),
                ('academic_background', models.TextField(blank=True)),
                ('years_of_experience', models.PositiveIntegerField(blank=True, null=True)),
                ('current_company', models.CharField(blank=True, max_length=255)),
                ('github_url', models.URLField(blank=True)),
                ('linkedin_url', models.URLField(blank=True)),
                ('twitter_url', models.URLField(blank=True)),
                ('analysis_confidence', models.FloatField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='JobRequirement',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('required_skills', models.TextField(blank=True)),
                ('min_experience_years', models.PositiveIntegerField(blank=True, null=True)),
                ('max_experience_years', models.PositiveIntegerField(blank=True, null=True)),
                ('required_education', models.TextField(blank=True)),
                ('domain_requirements', models.TextField(blank=True)),
                ('location', models.CharField(blank=True, max_length=255)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),

        # Vector store
        migrations.CreateModel(
            name='ResumeEmbedding',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_filename', models.CharField(blank=True, max_length=255)),
                ('content_chunk', models.TextField()),
                ('section_type', models.CharField(choices=[('education', 'Education'), ('experience', 'Experience'), ('skills', 'Skills'), ('projects', 'Projects'), ('certifications', 'Certifications'), ('general', 'General')], default='general', max_length=20)),
                ('embedding', models.JSONField(default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('candidate', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='embeddings', to='recruiting.candidate')),
                ('tracker', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='embeddings', to='recruiting.processtracker')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['candidate', 'section_type'], name='embedding_candidate_idx'),
                ],
            },
        ),

        # Matching
        migrations.CreateModel(
            name='CandidateMatch',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('match_score', models.FloatField(default=0)),
                ('skills_score', models.FloatField(default=0)),
                ('experience_score', models.FloatField(default=0)),
                ('education_score', models.FloatField(default=0)),
                ('domain_score', models.FloatField(default=0)),
                ('explanation', models.TextField(blank=True)),
                ('strengths', models.TextField(blank=True)),
                ('gaps', models.TextField(blank=True)),
                ('is_shortlisted', models.BooleanField(default=False)),
                ('is_selected', models.BooleanField(default=False)),
                ('recruiter_notes', models.TextField(blank=True)),
                ('match_pass', models.PositiveSmallIntegerField(default=1)),
                ('matched_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('candidate', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='matches', to='recruiting.candidate')),
                ('job_requirement', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='matches', to='recruiting.jobrequirement')),
            ],
            options={
                'ordering': ['-match_score'],
                'constraints': [
                    models.UniqueConstraint(fields=('candidate', 'job_requirement'), name='unique_candidate_job_match'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MatchAudit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('job_title', models.CharField(blank=True, max_length=255)),
                ('total_candidates', models.PositiveIntegerField(default=0)),
                ('successful_matches', models.PositiveIntegerField(default=0)),
                ('shortlisted_count', models.PositiveIntegerField(default=0)),
                ('average_match_score', models.FloatField(blank=True, null=True)),
                ('highest_match_score', models.FloatField(blank=True, null=True)),
                ('duration_ms', models.PositiveBigIntegerField(blank=True, null=True)),
                ('estimated_tokens_used', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=[('IN_PROGRESS', 'In progress'), ('COMPLETED', 'Completed'), ('FAILED', 'Failed')], default='IN_PROGRESS', max_length=16)),
                ('initiated_by', models.CharField(default='system', max_length=150)),
                ('error_message', models.TextField(blank=True)),
                ('match_summaries', models.JSONField(blank=True, default=list)),
                ('initiated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('job_requirement', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='match_audits', to='recruiting.jobrequirement')),
            ],
            options={
                'ordering': ['-initiated_at'],
                'indexes': [
                    models.Index(fields=['job_requirement', '-initiated_at'], name='audit_job_initiated_idx'),
                ],
            },
        ),

        # Enrichment cache
        migrations.CreateModel(
            name='CandidateExternalProfile',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('source', models.CharField(choices=[('GITHUB', 'GitHub'), ('LINKEDIN', 'LinkedIn'), ('TWITTER', 'Twitter / X'), ('INTERNET_SEARCH', 'Internet search')], max_length=20)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('SUCCESS', 'Success'), ('FAILED', 'Failed'), ('NOT_FOUND', 'Not found'), ('NOT_AVAILABLE', 'Not available')], default='PENDING', max_length=16)),
                ('profile_url', models.URLField(blank=True, max_length=500)),
                ('display_name', models.CharField(blank=True, max_length=255)),
                ('bio', models.TextField(blank=True)),
                ('location', models.CharField(blank=True, max_length=255)),
                ('company', models.CharField(blank=True, max_length=255)),
                ('public_repos', models.PositiveIntegerField(blank=True, null=True)),
                ('followers', models.PositiveIntegerField(blank=True, null=True)),
                ('repositories', models.JSONField(blank=True, default=list)),
                ('enriched_summary', models.TextField(blank=True)),
                ('error_message', models.TextField(blank=True)),
                ('last_fetched_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('candidate', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='external_profiles', to='recruiting.candidate')),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('candidate', 'source'), name='unique_candidate_source_profile'),
                ],
            },
        ),
    ]
