"""Kubernetes manifests that run fluent-bit as a node agent."""

from __future__ import annotations

import copy
import posixpath
from typing import Any

Manifest = dict[str, Any]

METRICS_PORT_NAME = "metrics"
METRICS_PORT = 2020
TCP_PROTOCOL = "TCP"

CONFIG_MOUNT_PATH = "/fluent-bit/config"
POSITIONS_MOUNT_PATH = "/fluent-bit/tail"
MOUNTS_ROOT = "/fluent-bit/secrets"


def _metadata(fb: Manifest) -> Manifest:
    return fb.get("metadata") or {}


def _spec(fb: Manifest) -> Manifest:
    return fb.get("spec") or {}


def _prune(values: Manifest) -> Manifest:
    """Drop keys whose value is None, as omitted optional fields."""
    return {key: value for key, value in values.items() if value is not None}


def _copied(value: Any) -> Any:
    return copy.deepcopy(value) if value is not None else None


def _field_env(name: str, field_path: str) -> Manifest:
    return {"name": name, "valueFrom": {"fieldRef": {"fieldPath": field_path}}}


def _host_path_volume(name: str, path: str) -> Manifest:
    return {"name": name, "hostPath": {"path": path}}


def _secret_volume(volume_name: str, source_name: str) -> Manifest:
    return dict(name=volume_name, secret=dict(secretName=source_name))


def make_daemonset(fb: Manifest, log_path: str) -> Manifest:
    """Return the daemon set that runs fluent-bit on every node."""
    meta = _metadata(fb)
    spec = _spec(fb)
    name = meta.get("name", "")
    namespace = meta.get("namespace", "")
    labels = spec.get("labels")
    if labels is None:
        labels = meta.get("labels")

    config_name = spec.get("fluentBitConfigName") or str()
    volumes: list[Manifest] = [
        _host_path_volume("varlibcontainers", log_path),
        _secret_volume("config", config_name),
        _host_path_volume("varlogs", "/var/log"),
        _host_path_volume("systemd", "/var/log/journal"),
    ]
    mounts: list[Manifest] = [
        {"name": "varlibcontainers", "readOnly": True, "mountPath": log_path},
        {"name": "config", "readOnly": True, "mountPath": CONFIG_MOUNT_PATH},
        {"name": "varlogs", "readOnly": True, "mountPath": "/var/log/"},
        {"name": "systemd", "readOnly": True, "mountPath": "/var/log/journal"},
    ]
    ports: list[Manifest] = [
        {"name": METRICS_PORT_NAME, "containerPort": METRICS_PORT, "protocol": TCP_PROTOCOL}
    ]
    env: list[Manifest] = [
        _field_env("NODE_NAME", "spec.nodeName"),
        _field_env("HOST_IP", "status.hostIP"),
    ]
    container = _prune(
        {
            "name": "fluent-bit",
            "image": spec.get("image"),
            "imagePullPolicy": spec.get("imagePullPolicy"),
            "ports": ports,
            "readinessProbe": _copied(spec.get("readinessProbe")),
            "livenessProbe": _copied(spec.get("livenessProbe")),
            "env": env,
            "volumeMounts": mounts,
            "resources": _copied(spec.get("resources")),
            "args": _copied(spec.get("args")),
            "command": _copied(spec.get("command")),
        }
    )
    pod_spec = _prune(
        {
            "serviceAccountName": name,
            "imagePullSecrets": _copied(spec.get("imagePullSecrets")),
            "volumes": volumes,
            "initContainers": _copied(spec.get("initContainers")),
            "containers": [container],
            "nodeSelector": _copied(spec.get("nodeSelector")),
            "tolerations": _copied(spec.get("tolerations")),
            "affinity": _copied(spec.get("affinity")),
            "securityContext": _copied(spec.get("securityContext")),
            "hostNetwork": True if spec.get("hostNetwork") else None,
        }
    )

    ports.extend(copy.deepcopy(spec.get("ports") or []))
    env.extend(copy.deepcopy(spec.get("envVars") or []))

    for key in ("runtimeClassName", "dnsPolicy", "priorityClassName"):
        if spec.get(key):
            pod_spec[key] = spec[key]

    volumes.extend(copy.deepcopy(spec.get("volumes") or []))
    mounts.extend(copy.deepcopy(spec.get("volumesMounts") or []))

    position_db = spec.get("positionDB")
    if position_db:
        volumes.append({"name": "positions", **copy.deepcopy(position_db)})
        mounts.append({"name": "positions", "mountPath": POSITIONS_MOUNT_PATH})

    for volume_name in spec.get("secrets") or ():
        volumes.append(_secret_volume(volume_name, volume_name))
        mount_path = posixpath.join(MOUNTS_ROOT, volume_name)
        mounts.append({"name": volume_name, "readOnly": True, "mountPath": mount_path})

    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": _prune(
            {
                "name": name,
                "namespace": namespace,
                "labels": _copied(labels),
                "annotations": _copied(meta.get("annotations")),
            }
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
        },
    }


def make_fluentbit_service(fb: Manifest) -> Manifest:
    """Return the ClusterIP service exposing fluent-bit's metrics and ports."""
    meta = _metadata(fb)
    labels = meta.get("labels")
    ports: list[Manifest] = [
        {
            "name": METRICS_PORT_NAME,
            "port": METRICS_PORT,
            "protocol": TCP_PROTOCOL,
            "targetPort": METRICS_PORT,
        }
    ]
    for port in _spec(fb).get("ports") or ():
        number = port.get("containerPort", 0)
        ports.append(
            _prune(
                {
                    "name": port.get("name") or None,
                    "port": number,
                    "protocol": port.get("protocol") or None,
                    "targetPort": number,
                }
            )
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
        "spec": _prune({"selector": _copied(labels), "type": "ClusterIP", "ports": ports}),
    }