"""Kubernetes manifests that run a fluent-bit collector as a stateful set."""

from __future__ import annotations

import copy
import posixpath
from typing import Any

Manifest = dict[str, Any]

METRICS_PORT_NAME = "metrics"
METRICS_PORT = 2020
TCP_PROTOCOL = "TCP"

DEFAULT_BUFFER_PATH = "/buffers/fluentbit/log"
DEFAULT_BUFFER_STORAGE = "1Gi"
CONFIG_VOLUME_NAME = "config"
CONFIG_MOUNT_PATH = "/fluent-bit/config"
MOUNTS_ROOT = "/fluent-bit/secrets"


def _metadata(co: Manifest) -> Manifest:
    return co.get("metadata") or {}


def _spec(co: Manifest) -> Manifest:
    return co.get("spec") or {}


def _prune(values: Manifest) -> Manifest:
    """Drop keys whose value is None, as omitted optional fields."""
    return {key: value for key, value in values.items() if value is not None}


def _copied(value: Any) -> Any:
    return copy.deepcopy(value) if value is not None else None


def _field_env(name: str, field_path: str) -> Manifest:
    return {"name": name, "valueFrom": {"fieldRef": {"fieldPath": field_path}}}


def _service_port(name: str | None, port: int, protocol: str | None) -> Manifest:
    return _prune(
        {
            "name": name or None,
            "port": port,
            "protocol": protocol or None,
            "targetPort": port,
        }
    )


def make_collector_service(co: Manifest) -> Manifest:
    """Return the ClusterIP service exposing the collector's metrics and ports."""
    meta = _metadata(co)
    labels = meta.get("labels")
    ports = [_service_port(METRICS_PORT_NAME, METRICS_PORT, TCP_PROTOCOL)]
    ports.extend(
        _service_port(port.get("name"), port.get("containerPort", 0), port.get("protocol"))
        for port in _spec(co).get("ports") or ()
    )
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _prune(
            {
                "name": meta.get("name", ""),
                "namespace": meta.get("namespace", ""),
                "labels": _copied(labels),
            }
        ),
        "spec": _prune(
            {"selector": _copied(labels), "type": "ClusterIP", "ports": ports}
        ),
    }


def fluentbit_buffer_mount_path(co: Manifest) -> str:
    """Return where the collector's buffer volume is mounted."""
    path = _spec(co).get("bufferPath")
    return path if path is not None else DEFAULT_BUFFER_PATH


def make_fluentbit_pvc(co: Manifest) -> Manifest:
    """Return the persistent volume claim that holds the collector's buffers."""
    meta = _metadata(co)
    name = meta.get("name", "")
    claim = _spec(co).get("persistentVolumeClaim")
    if claim is None:
        claim_spec: Manifest = {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": DEFAULT_BUFFER_STORAGE}},
            "volumeMode": "Filesystem",
        }
    else:
        source = claim.get("spec") or {}
        claim_spec = _prune(
            {
                "accessModes": _copied(source.get("accessModes")),
                "resources": _copied(source.get("resources")),
                "volumeMode": source.get("volumeMode"),
            }
        )
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _prune(
            {
                "name": f"{name}-buffer-pvc",
                "namespace": meta.get("namespace", ""),
                "labels": _copied(meta.get("labels")),
            }
        ),
        "spec": claim_spec,
    }


def _secret_volume(volume_name: str, source_name: str) -> Manifest:
    return dict(name=volume_name, secret=dict(secretName=source_name))


def make_collector_statefulset(co: Manifest) -> Manifest:
    """Return the stateful set that runs fluent-bit with a buffer volume claim."""
    meta = _metadata(co)
    spec = _spec(co)
    name = meta.get("name", "")
    namespace = meta.get("namespace", "")
    labels = meta.get("labels")

    config_name = spec.get("fluentBitConfigName") or str()
    volumes: list[Manifest] = [_secret_volume(CONFIG_VOLUME_NAME, config_name)]
    mounts: list[Manifest] = [
        {"name": CONFIG_VOLUME_NAME, "readOnly": True, "mountPath": CONFIG_MOUNT_PATH}
    ]
    container = _prune(
        {
            "name": "fluent-bit",
            "image": spec.get("image"),
            "args": _copied(spec.get("args")),
            "imagePullPolicy": spec.get("imagePullPolicy"),
            "ports": [
                {
                    "name": METRICS_PORT_NAME,
                    "containerPort": METRICS_PORT,
                    "protocol": TCP_PROTOCOL,
                }
            ],
            "env": [
                _field_env("NODE_NAME", "spec.nodeName"),
                _field_env("HOST_IP", "status.hostIP"),
            ],
            "volumeMounts": mounts,
            "resources": _copied(spec.get("resources")),
        }
    )
    pod_spec = _prune(
        {
            "serviceAccountName": name,
            "imagePullSecrets": _copied(spec.get("imagePullSecrets")),
            "volumes": volumes,
            "containers": [container],
            "nodeSelector": _copied(spec.get("nodeSelector")),
            "tolerations": _copied(spec.get("tolerations")),
            "affinity": _copied(spec.get("affinity")),
            "securityContext": _copied(spec.get("securityContext")),
            "hostNetwork": True if spec.get("hostNetwork") else None,
        }
    )
    if spec.get("runtimeClassName"):
        pod_spec["runtimeClassName"] = spec["runtimeClassName"]
    if spec.get("priorityClassName"):
        pod_spec["priorityClassName"] = spec["priorityClassName"]

    volumes.extend(copy.deepcopy(spec.get("volumes") or []))
    mounts.extend(copy.deepcopy(spec.get("volumesMounts") or []))

    for volume_name in spec.get("secrets") or ():
        volumes.append(_secret_volume(volume_name, volume_name))
        mount_path = posixpath.join(MOUNTS_ROOT, volume_name)
        mounts.append({"name": volume_name, "readOnly": True, "mountPath": mount_path})

    mounts.append(
        {"name": f"{name}-buffer-pvc", "mountPath": fluentbit_buffer_mount_path(co)}
    )

    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": _prune(
            {"name": name, "namespace": namespace, "labels": _copied(labels)}
        ),
        "spec": {
            "selector": _prune({"matchLabels": _copied(labels)}),
            "template": {
                "metadata": _prune(
                    {
                        "name": name,
                        "namespace": namespace,
                        "labels": _copied(labels),
                        "annotations": _copied(spec.get("annotations")),
                    }
                ),
                "spec": pod_spec,
            },
            "volumeClaimTemplates": [make_fluentbit_pvc(co)],
        },
    }