"""Kubernetes manifests that run a fluentd aggregator."""

from __future__ import annotations

import copy
from collections.abc import Iterator
from typing import Any

Manifest = dict[str, Any]

CONFIG_VOL_NAME = "config"
FLUENTD_MOUNT_PATH = "/fluentd/etc"
BUFFER_MOUNT_PATH = "/buffers"

METRICS_NAME = "metrics"
METRICS_PORT = 2021

DEFAULT_FORWARD_PORT = 24424
DEFAULT_HTTP_PORT = 9880

DEFAULT_FORWARD_NAME = "forward"
DEFAULT_HTTP_NAME = "http"

INPUT_FORWARD_TYPE = "forward"
INPUT_HTTP_TYPE = "http"

FLUENTD_FORWARD_PORT_NAME = "forward"
FLUENTD_HTTP_PORT_NAME = "http"

DEFAULT_BUFFER_STORAGE = "1Gi"


def _metadata(fd: Manifest) -> Manifest:
    return fd.get("metadata") or {}


def _spec(fd: Manifest) -> Manifest:
    return fd.get("spec") or {}


def _name_and_namespace(fd: Manifest) -> tuple[str, str]:
    meta = _metadata(fd)
    return meta.get("name", ""), meta.get("namespace", "")


def _component_labels(name: str) -> dict[str, str]:
    return {
        "app.kubernetes.io/name": name,
        "app.kubernetes.io/instance": "fluentd",
        "app.kubernetes.io/component": "fluentd",
    }


def _prune(values: Manifest) -> Manifest:
    """Drop keys whose value is None, as omitted optional fields."""
    return {key: value for key, value in values.items() if value is not None}


def _copied(value: Any) -> Any:
    return copy.deepcopy(value) if value is not None else None


def _secret_volume(volume_name: str, source_name: str) -> Manifest:
    return dict(name=volume_name, secret=dict(secretName=source_name))


def _input_ports(fd: Manifest) -> Iterator[tuple[str, int, str]]:
    """Yield (name, port, target port name) for each global input with a port."""
    for item in _spec(fd).get("globalInputs") or ():
        if not item:
            continue
        forward = item.get("forward")
        if forward is not None:
            port = forward.get("port") or DEFAULT_FORWARD_PORT
            yield DEFAULT_FORWARD_NAME, port, FLUENTD_FORWARD_PORT_NAME
            continue
        http = item.get("http")
        if http is not None:
            port = http.get("port") or DEFAULT_HTTP_PORT
            yield DEFAULT_HTTP_NAME, port, FLUENTD_HTTP_PORT_NAME


def _container_ports(fd: Manifest) -> list[Manifest]:
    ports = [{"name": METRICS_NAME, "containerPort": METRICS_PORT, "protocol": "TCP"}]
    ports.extend(
        {"name": name, "containerPort": port, "protocol": "TCP"}
        for name, port, _ in _input_ports(fd)
    )
    return ports


def make_fluentd_service(fd: Manifest) -> Manifest:
    """Return the ClusterIP service exposing the fluentd inputs."""
    name, namespace = _name_and_namespace(fd)
    spec: Manifest = {"selector": _component_labels(name), "type": "ClusterIP"}
    ports = [
        {"name": port_name, "port": port, "targetPort": target, "protocol": "TCP"}
        for port_name, port, target in _input_ports(fd)
    ]
    if ports:
        spec["ports"] = ports
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": _component_labels(name),
        },
        "spec": spec,
    }


def _default_pvc_spec() -> Manifest:
    return {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": DEFAULT_BUFFER_STORAGE}},
        "volumeMode": "Filesystem",
    }


def make_fluentd_pvc(fd: Manifest) -> Manifest:
    """Return the persistent volume claim that holds the fluentd buffers."""
    name, namespace = _name_and_namespace(fd)
    buffer_volume = _spec(fd).get("bufferVolume")
    claim = (buffer_volume or {}).get("pvc")
    if claim is None:
        claim_spec = _default_pvc_spec()
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
        "metadata": {
            "name": f"{name}-buffer-pvc",
            "namespace": namespace,
            "labels": _component_labels(name),
        },
        "spec": claim_spec,
    }


def make_statefulset(fd: Manifest) -> Manifest:
    """Return the stateful set that runs fluentd with its config and buffer."""
    name, namespace = _name_and_namespace(fd)
    spec = _spec(fd)
    replicas = spec.get("replicas") or 1

    labels = _component_labels(name)
    for key, value in (_metadata(fd).get("labels") or {}).items():
        labels.setdefault(key, value)

    config_name = f"{name}-config"
    volumes = [_secret_volume(CONFIG_VOL_NAME, config_name)]
    mounts = [
        {"name": CONFIG_VOL_NAME, "readOnly": True, "mountPath": FLUENTD_MOUNT_PATH},
    ]
    container = _prune(
        {
            "name": "fluentd",
            "image": spec.get("image"),
            "args": _copied(spec.get("args")),
            "imagePullPolicy": spec.get("imagePullPolicy"),
            "ports": _container_ports(fd),
            "volumeMounts": mounts,
            "resources": _copied(spec.get("resources")),
            "env": [{"name": "BUFFER_PATH", "value": BUFFER_MOUNT_PATH}],
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
        }
    )
    if spec.get("runtimeClassName"):
        pod_spec["runtimeClassName"] = spec["runtimeClassName"]
    if spec.get("priorityClassName"):
        pod_spec["priorityClassName"] = spec["priorityClassName"]

    sts_spec: Manifest = {
        "replicas": replicas,
        "selector": {"matchLabels": dict(labels)},
        "template": {
            "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
            "spec": pod_spec,
        },
    }
    statefulset = {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
        "spec": sts_spec,
    }

    buffer_volume = spec.get("bufferVolume")
    if buffer_volume is not None and not buffer_volume.get("disableBufferVolume"):
        volume_name = f"{name}-buffer"
        for source_key in ("hostPath", "emptyDir"):
            source = buffer_volume.get(source_key)
            if source is not None:
                volumes.append({"name": volume_name, source_key: copy.deepcopy(source)})
                mounts.append({"name": volume_name, "mountPath": BUFFER_MOUNT_PATH})
                return statefulset

    sts_spec["volumeClaimTemplates"] = [make_fluentd_pvc(fd)]
    mounts.append({"name": f"{name}-buffer-pvc", "mountPath": BUFFER_MOUNT_PATH})
    return statefulset