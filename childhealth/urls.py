from django.urls import path
from .views import (
    ChildListView,
    IllnessDetailView,
    IllnessHistoryView,
    IllnessListView,
    VisitDetailView,
    VisitHistoryView,
    VisitListView,
)

urlpatterns = [
    path('children/', ChildListView.as_view(), name='child-list'),
    path('visits/', VisitListView.as_view(), name='visit-list'),
    path('visits/<int:visit_id>/', VisitDetailView.as_view(), name='visit-detail'),
    path('visits/<int:visit_id>/history/', VisitHistoryView.as_view(), name='visit-history'),
    path('illnesses/', IllnessListView.as_view(), name='illness-list'),
    path('illnesses/<int:illness_id>/', IllnessDetailView.as_view(), name='illness-detail'),
    path('illnesses/<int:illness_id>/history/', IllnessHistoryView.as_view(), name='illness-history'),
]
