"""Tests for Kubernetes secrets utilities."""

from __future__ import annotations

import base64
from unittest.mock import Mock

import pytest
from kubernetes import client

from cloud_resource_operator.constants import LABEL_MANAGED_BY
from cloud_resource_operator.utils.secrets import (
    apply_secret,
    create_secret,
    read_secret_data,
    replace_secret,
)


class TestCreateSecret:
    """Test cases for create_secret function."""

    def test_create_secret(self):
        """Test creating an encoded, labelled secret."""
        mock_api = Mock()
        owner = {"apiVersion": "integreatly.org/v1alpha1", "kind": "Redis", "name": "example", "uid": "u"}

        create_secret(mock_api, "apps", "example-connection", {"uri": "cache.example"}, owner_references=[owner])

        kwargs = mock_api.create_namespaced_secret.call_args.kwargs
        assert kwargs["namespace"] == "apps"
        body = kwargs["body"]
        assert body.type == "Opaque"
        assert body.metadata.owner_references == [owner]
        assert body.metadata.labels == {LABEL_MANAGED_BY: "cloud-resource-operator"}
        assert body.data == {"uri": base64.b64encode(b"cache.example").decode("utf-8")}

    def test_create_secret_extra_labels(self):
        """Test that additional labels are merged."""
        mock_api = Mock()

        create_secret(mock_api, "apps", "s", {}, labels={"team": "a"})

        labels = mock_api.create_namespaced_secret.call_args.kwargs["body"].metadata.labels
        assert labels["team"] == "a"
        assert LABEL_MANAGED_BY in labels


class TestApplySecret:
    """Test cases for apply_secret function."""

    def test_apply_creates(self):
        """Test that a new secret is created."""
        mock_api = Mock()

        apply_secret(mock_api, "apps", "s", {"k": "v"})

        mock_api.create_namespaced_secret.assert_called_once()
        mock_api.replace_namespaced_secret.assert_not_called()

    def test_apply_replaces_on_conflict(self):
        """Test that an existing secret is replaced."""
        mock_api = Mock()
        mock_api.create_namespaced_secret.side_effect = client.exceptions.ApiException(status=409)

        apply_secret(mock_api, "apps", "s", {"k": "v"})

        mock_api.replace_namespaced_secret.assert_called_once()
        assert mock_api.replace_namespaced_secret.call_args.kwargs["name"] == "s"

    def test_apply_other_errors_propagate(self):
        """Test that other API errors are raised."""
        mock_api = Mock()
        mock_api.create_namespaced_secret.side_effect = client.exceptions.ApiException(status=403)

        with pytest.raises(client.exceptions.ApiException):
            apply_secret(mock_api, "apps", "s", {"k": "v"})

    def test_replace_secret(self):
        """Test replacing a secret."""
        mock_api = Mock()

        replace_secret(mock_api, "apps", "s", {"k": "v"})

        body = mock_api.replace_namespaced_secret.call_args.kwargs["body"]
        assert body.data == {"k": base64.b64encode(b"v").decode("utf-8")}


class TestReadSecretData:
    """Test cases for read_secret_data function."""

    def test_read_secret_data(self):
        """Test reading and decoding all keys."""
        mock_api = Mock()
        mock_secret = Mock()
        mock_secret.data = {"a": base64.b64encode(b"1").decode("utf-8"), "b": b"2"}
        mock_api.read_namespaced_secret.return_value = mock_secret

        assert read_secret_data(mock_api, "apps", "s") == {"a": "1", "b": "2"}

    def test_read_missing_secret(self):
        """Test that a missing secret reads as None."""
        mock_api = Mock()
        mock_api.read_namespaced_secret.side_effect = client.exceptions.ApiException(status=404)

        assert read_secret_data(mock_api, "apps", "s") is None

    def test_read_empty_secret(self):
        """Test that a secret without data reads as empty."""
        mock_api = Mock()
        mock_secret = Mock()
        mock_secret.data = None
        mock_api.read_namespaced_secret.return_value = mock_secret

        assert read_secret_data(mock_api, "apps", "s") == {}
