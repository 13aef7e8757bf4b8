"""RBAC manifests that let log agents read pod metadata."""

from __future__ import annotations

import copy
from typing import Any

RBAC_GROUP = "rbac.authorization.k8s.io"
RBAC_API_VERSION = f"{RBAC_GROUP}/v1"
SCOPED_RBAC_NAME = "kubesphere:fluent"

Manifest = dict[str, Any]


def _pod_reader_rules() -> list[Manifest]:
    return [{"verbs": ["get"], "apiGroups": [""], "resources": ["pods"]}]


def _service_account(name: str, namespace: str) -> Manifest:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {"name": name, "namespace": namespace},
    }


def _subject(name: str, namespace: str) -> Manifest:
    return {"kind": "ServiceAccount", "name": name, "namespace": namespace}


def make_rbac_objects(
    name: str,
    namespace: str,
    component: str,
    additional_rules: list[Manifest] | None = None,
) -> tuple[Manifest, Manifest, Manifest]:
    """Return a cluster role, service account and cluster role binding."""
    rbac_name = f"kubesphere-{component}"
    rules = _pod_reader_rules()
    if additional_rules:
        rules.extend(copy.deepcopy(additional_rules))

    cluster_role = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "ClusterRole",
        "metadata": {"name": rbac_name},
        "rules": rules,
    }
    binding = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "ClusterRoleBinding",
        "metadata": {"name": rbac_name},
        "subjects": [_subject(name, namespace)],
        "roleRef": {"apiGroup": RBAC_GROUP, "kind": "ClusterRole", "name": rbac_name},
    }
    return cluster_role, _service_account(name, namespace), binding


def make_scoped_rbac_objects(
    fb_name: str, fb_namespace: str
) -> tuple[Manifest, Manifest, Manifest]:
    """Return a namespaced role, service account and role binding."""
    metadata = {"name": SCOPED_RBAC_NAME, "namespace": fb_namespace}
    role = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "Role",
        "metadata": dict(metadata),
        "rules": _pod_reader_rules(),
    }
    binding = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "RoleBinding",
        "metadata": dict(metadata),
        "subjects": [_subject(fb_name, fb_namespace)],
        "roleRef": {"apiGroup": RBAC_GROUP, "kind": "Role", "name": SCOPED_RBAC_NAME},
    }
    return role, _service_account(fb_name, fb_namespace), binding