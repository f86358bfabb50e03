from django.urls import path

from recruiting import views

urlpatterns = [
    path('resumes/upload/', views.upload_resumes, name='resume-upload'),
    path('trackers/', views.tracker_list, name='tracker-list'),
    path('trackers/<uuid:tracker_id>/', views.tracker_detail, name='tracker-detail'),
    path('job-requirements/<uuid:job_requirement_id>/match/', views.run_matching, name='job-requirement-match'),
    path(
        'job-requirements/<uuid:job_requirement_id>/matches/',
        views.job_requirement_matches,
        name='job-requirement-matches',
    ),
    path('match-audits/', views.match_audit_list, name='match-audit-list'),
    path('match-audits/<uuid:audit_id>/', views.match_audit_detail, name='match-audit-detail'),
    path('jobs/health/', views.queue_health, name='job-queue-health'),
    path('jobs/stats/', views.queue_stats, name='job-queue-stats'),
    path('jobs/<uuid:job_id>/cancel/', views.cancel_job, name='job-cancel'),
    path('jobs/<uuid:job_id>/retry/', views.retry_job, name='job-retry'),
]
