"""
URL configuration for the planner app.
"""

from django.urls import path
from . import views

urlpatterns = [
    path('', views.api_info, name='api-info'),
    path('planner/what-to-do-now/', views.what_to_do_now, name='what-to-do-now'),
    path('planner/rank/', views.rank_tasks, name='rank-tasks'),
    path('planner/contextual-scores/', views.contextual_scores, name='contextual-scores'),
    path('planner/time-based/', views.time_based_recommendations, name='time-based'),
    path('planner/time-context/', views.get_time_context, name='time-context'),
    path('insights/task/', views.task_insights, name='task-insights'),
    # Recommendations and feedback
    path('recommendations/', views.actionable_recommendations, name='recommendations'),
    path('recommendations/effectiveness/', views.recommendation_effectiveness, name='recommendation-effectiveness'),
    path('recommendations/<str:recommendation_id>/feedback/', views.recommendation_feedback, name='recommendation-feedback'),
    path('recommendations/<str:recommendation_id>/implement/', views.implement_recommendation, name='recommendation-implement'),
    path('recommendations/<str:recommendation_id>/dismiss/', views.dismiss_recommendation, name='recommendation-dismiss'),
    path('analytics/productivity/', views.productivity_metrics, name='productivity'),
    path('assistant/context/', views.assistant_context, name='assistant-context'),
    path('cache/stats/', views.cache_stats, name='cache-stats'),
]
