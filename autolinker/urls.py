"""URL configuration for the autolinker app.

Routes are namespaced under ``autolinker`` so the project URL configuration
can mount them anywhere.
"""

from django.urls import path

from . import views

app_name = 'autolinker'

urlpatterns = [
    path('render/', views.render, name='render'),
    path('preview/', views.preview_rule, name='preview'),
]
