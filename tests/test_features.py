"""Tests for the feature toggle system."""

import pytest
from django.http import Http404, HttpResponse
from django.test import RequestFactory, override_settings
from django.views import View

from django_boxoffice.features import FeatureRequiredMixin, is_feature_enabled, require_feature
from django_boxoffice.settings import get_config

ALL_FEATURES = ("storefront", "scanner", "admin_api")


class TestFeaturesConfigDefaults:
    """All features are enabled by default."""

    def test_all_features_enabled_by_default(self) -> None:
        config = get_config().features
        for feature in ALL_FEATURES:
            assert getattr(config, f"{feature}_enabled") is True

    def test_features_config_is_frozen(self) -> None:
        config = get_config().features
        with pytest.raises(AttributeError):
            config.scanner_enabled = False  # type: ignore[misc]


# ---------------------------------------------------------------------------
# is_feature_enabled / require_feature
# ---------------------------------------------------------------------------


class TestIsFeatureEnabled:
    @pytest.mark.parametrize("feature", ALL_FEATURES)
    def test_returns_true_by_default(self, feature: str) -> None:
        assert is_feature_enabled(feature) is True

    @pytest.mark.parametrize("feature", ALL_FEATURES)
    def test_returns_false_when_disabled(self, feature: str) -> None:
        with override_settings(BOXOFFICE={"features": {f"{feature}_enabled": False}}):
            assert is_feature_enabled(feature) is False

    def test_unknown_feature_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unknown feature"):
            is_feature_enabled("nonexistent")


class TestRequireFeature:
    def test_enabled_feature_passes(self) -> None:
        require_feature("scanner")

    def test_disabled_feature_raises_404(self) -> None:
        with override_settings(BOXOFFICE={"features": {"scanner_enabled": False}}):
            with pytest.raises(Http404, match="scanner"):
                require_feature("scanner")


# ---------------------------------------------------------------------------
# FeatureRequiredMixin
# ---------------------------------------------------------------------------


class _StorefrontView(FeatureRequiredMixin, View):
    required_feature = "storefront"

    def get(self, request):
        return HttpResponse("ok")


class _MultiFeatureView(FeatureRequiredMixin, View):
    required_feature = ("scanner", "admin_api")

    def get(self, request):
        return HttpResponse("ok")


class TestFeatureRequiredMixin:
    def test_enabled_feature_dispatches(self) -> None:
        request = RequestFactory().get("/")
        response = _StorefrontView.as_view()(request)
        assert response.status_code == 200

    def test_disabled_feature_raises_404(self) -> None:
        request = RequestFactory().get("/")
        with override_settings(BOXOFFICE={"features": {"storefront_enabled": False}}):
            with pytest.raises(Http404):
                _StorefrontView.as_view()(request)

    def test_all_listed_features_must_be_enabled(self) -> None:
        request = RequestFactory().get("/")
        with override_settings(BOXOFFICE={"features": {"admin_api_enabled": False}}):
            with pytest.raises(Http404):
                _MultiFeatureView.as_view()(request)
