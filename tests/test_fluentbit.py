import pytest

from fluentkit.fluentbit import make_daemonset, make_fluentbit_service

LOG_PATH = "/var/lib/docker/containers"


@pytest.fixture
def fluentbit():
    return {
        "metadata": {
            "name": "fluent-bit",
            "namespace": "logging",
            "labels": {"app": "fb"},
            "annotations": {"note": "x"},
        },
        "spec": {
            "image": "fluent-bit:latest",
            "fluentBitConfigName": "fb-config",
        },
    }


def _pod(ds):
    return ds["spec"]["template"]["spec"]


def _container(ds):
    return _pod(ds)["containers"][0]


def test_default_volumes(fluentbit):
    ds = make_daemonset(fluentbit, LOG_PATH)
    volumes = _pod(ds)["volumes"]
    assert [v["name"] for v in volumes] == [
        "varlibcontainers",
        "config",
        "varlogs",
        "systemd",
    ]
    assert volumes[0]["hostPath"]["path"] == LOG_PATH
    assert volumes[1]["secret"]["secretName"] == "fb-config"
    mounts = _container(ds)["volumeMounts"]
    assert mounts[0]["mountPath"] == LOG_PATH
    assert all(m["readOnly"] for m in mounts)


def test_labels_from_spec_override_metadata(fluentbit):
    ds = make_daemonset(fluentbit, LOG_PATH)
    assert ds["metadata"]["labels"] == {"app": "fb"}
    fluentbit["spec"]["labels"] = {"role": "agent"}
    ds = make_daemonset(fluentbit, LOG_PATH)
    assert ds["metadata"]["labels"] == {"role": "agent"}
    assert ds["spec"]["selector"]["matchLabels"] == {"role": "agent"}
    assert ds["spec"]["template"]["metadata"]["labels"] == {"role": "agent"}
    assert ds["metadata"]["annotations"] == {"note": "x"}


def test_args_command_ports_env(fluentbit):
    fluentbit["spec"].update(
        args=["--verbose"],
        command=["/bin/fb"],
        ports=[{"name": "http", "containerPort": 8888}],
        envVars=[{"name": "MODE", "value": "debug"}],
    )
    container = _container(make_daemonset(fluentbit, LOG_PATH))
    assert container["args"] == ["--verbose"]
    assert container["command"] == ["/bin/fb"]
    assert [p["name"] for p in container["ports"]] == ["metrics", "http"]
    assert [e["name"] for e in container["env"]] == ["NODE_NAME", "HOST_IP", "MODE"]


def test_without_args_or_command(fluentbit):
    container = _container(make_daemonset(fluentbit, LOG_PATH))
    assert "args" not in container
    assert "command" not in container
    assert container["ports"] == [
        {"name": "metrics", "containerPort": 2020, "protocol": "TCP"}
    ]


def test_optional_pod_fields(fluentbit):
    pod = _pod(make_daemonset(fluentbit, LOG_PATH))
    assert not {"runtimeClassName", "dnsPolicy", "priorityClassName"} & pod.keys()
    fluentbit["spec"].update(
        runtimeClassName="gvisor", dnsPolicy="ClusterFirstWithHostNet", priorityClassName="high"
    )
    pod = _pod(make_daemonset(fluentbit, LOG_PATH))
    assert pod["runtimeClassName"] == "gvisor"
    assert pod["dnsPolicy"] == "ClusterFirstWithHostNet"
    assert pod["priorityClassName"] == "high"


def test_position_db_mounted(fluentbit):
    fluentbit["spec"]["positionDB"] = {"hostPath": {"path": "/var/lib/fb"}}
    ds = make_daemonset(fluentbit, LOG_PATH)
    assert _pod(ds)["volumes"][-1] == {
        "name": "positions",
        "hostPath": {"path": "/var/lib/fb"},
    }
    assert _container(ds)["volumeMounts"][-1] == {
        "name": "positions",
        "mountPath": "/fluent-bit/tail",
    }


def test_empty_position_db_ignored(fluentbit):
    fluentbit["spec"]["positionDB"] = {}
    ds = make_daemonset(fluentbit, LOG_PATH)
    assert "positions" not in [v["name"] for v in _pod(ds)["volumes"]]


def test_secrets_after_extra_volumes(fluentbit):
    fluentbit["spec"].update(
        volumes=[{"name": "extra", "emptyDir": {}}],
        volumesMounts=[{"name": "extra", "mountPath": "/extra"}],
        secrets=["es-creds"],
    )
    ds = make_daemonset(fluentbit, LOG_PATH)
    names = [v["name"] for v in _pod(ds)["volumes"]]
    assert names[-2:] == ["extra", "es-creds"]
    mount = _container(ds)["volumeMounts"][-1]
    assert mount["name"] == "es-creds"
    assert mount["mountPath"].startswith("/fluent-bit/secrets/")
    assert mount["mountPath"].endswith("es-creds")


def test_service_ports(fluentbit):
    fluentbit["spec"]["ports"] = [
        {"name": "forward", "containerPort": 24224, "protocol": "TCP"}
    ]
    svc = make_fluentbit_service(fluentbit)
    assert svc["spec"]["type"] == "ClusterIP"
    assert svc["spec"]["selector"] == {"app": "fb"}
    assert svc["spec"]["ports"][0] == {
        "name": "metrics",
        "port": 2020,
        "protocol": "TCP",
        "targetPort": 2020,
    }
    assert svc["spec"]["ports"][1]["port"] == svc["spec"]["ports"][1]["targetPort"] == 24224
    assert svc["metadata"]["name"] == "fluent-bit"