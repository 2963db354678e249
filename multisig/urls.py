from django.urls import path
from .views import (
  XpubListCreateView,
  XpubDetailView,
  AddressDeriveView,
  DescriptorListCreateView,
  DescriptorDetailView,
  PsbtListCreateView,
  PsbtInspectView,
  PsbtDetailView,
  PsbtNotesView,
  PsbtSignersView,
  PsbtBroadcastView,
)

urlpatterns = [
    path('xpubs/', XpubListCreateView.as_view(), name='xpub-list-create'),
    path('xpubs/<int:pk>/', XpubDetailView.as_view(), name='xpub-detail'),
    path('addresses/', AddressDeriveView.as_view(), name='address-derive'),
    path('descriptors/', DescriptorListCreateView.as_view(), name='descriptor-list-create'),
    path('descriptors/<int:pk>/', DescriptorDetailView.as_view(), name='descriptor-detail'),
    path('psbts/', PsbtListCreateView.as_view(), name='psbt-list-create'),
    path('psbts/inspect/', PsbtInspectView.as_view(), name='psbt-inspect'),
    path('psbts/<int:pk>/', PsbtDetailView.as_view(), name='psbt-detail'),
    path('psbts/<int:pk>/notes/', PsbtNotesView.as_view(), name='psbt-notes'),
    path('psbts/<int:pk>/signers/', PsbtSignersView.as_view(), name='psbt-signers'),
    path('psbts/<int:pk>/broadcast/', PsbtBroadcastView.as_view(), name='psbt-broadcast'),
]
