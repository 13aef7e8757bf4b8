# fluentkit

Tools for running Fluent Bit and Fluentd, in and around Kubernetes:

- **Manifest builders** that return the Kubernetes objects a log pipeline
  needs, as plain dictionaries: the Fluent Bit DaemonSet and Service, the
  collector StatefulSet, Service and buffer claim, the Fluentd StatefulSet,
  Service and buffer claim, and the RBAC objects (ClusterRole,
  ServiceAccount, ClusterRoleBinding, or the namespaced Role and RoleBinding).
- **Route labels** for Fluentd configurations: a stable label derived from a
  configuration's namespace, name and match rules.
- **File watchers**, event-based or polling, reporting create, write, remove,
  rename and chmod events on a file or on a directory's direct entries.
- **Process supervisors** that keep Fluent Bit or Fluentd running, restart it
  with exponential back-off, and react when the configuration changes.
- A small **HTTP receiver** that logs the records forwarded to it.

## Installation

```
pip install fluentkit
```

Python 3.10 or later is required. The only dependency is `watchdog`.

## Commands

### Fluent Bit supervisor

```
fluentkit-fluentbit-watcher
```

Starts the Fluent Bit binary as `<bin> -c <config>` (plus `-e <plugin>` when
given) and watches the configuration directory. When a file there is created
or written while Fluent Bit is running, Fluent Bit is sent SIGTERM (and
SIGKILL if it has not exited within the timeout) and is then started again.
After each exit the restart waits 1 s, 2 s, 4 s, … capped at five minutes; a
run lasting ten minutes or more, or a configuration change, resets the delay.
SIGINT or SIGTERM stops the supervisor and Fluent Bit with it.

Options:

- `-b` binary path (default `/fluent-bit/bin/fluent-bit`)
- `-c` configuration file (default `/fluent-bit/etc/fluent-bit.conf`)
- `-e` external plugin path
- `--watch-path` directory to watch (default `/fluent-bit/config`)
- `--poll` use the polling watcher, `--poll-interval` its interval
  (a duration such as `1s`, `500ms` or `1m30s`; default `1s`)
- `--flb-timeout` grace period before SIGKILL (default `30s`)
- `--exit-on-failure` stop supervising when Fluent Bit exits with a non-zero
  status

The long options may also be written with a single dash (`-poll`).

### Fluentd supervisor

```
fluentkit-fluentd-watcher
```

Starts Fluentd as `<bin> -c <config> -p <plugins>`. When the watched directory
reports a rename (the way mounted Secrets and ConfigMaps are updated),
Fluentd is sent SIGHUP to reload its configuration, falling back to SIGTERM if
the signal cannot be sent. Restarts follow the same back-off as above.

Options: `-b` (default `/usr/bin/fluentd`), `-c` (default
`/fluentd/etc/fluent.conf`), `-p` plugin directory (default
`/fluentd/plugins`), `--watch-path` (default `/fluentd/etc`), `--poll`,
`--poll-interval` and `--exit-on-failure`.

### HTTP receiver

```
fluentkit-receiver [--host HOST] [--port PORT]
```

Listens on port 8080 by default. For each request whose body is a JSON array
of records with `log`, `stream` and `time` fields, it logs one line per
record and answers with an empty 200:

```
log=hello, stream=stdout, time=2024-01-01T00:00:00Z
```

A body that is not such an array is logged as an error message and ignored.
Point a Fluent Bit or Fluentd HTTP output at it to see what a pipeline sends.

## Library use

```python
from fluentkit.rbac import make_rbac_objects, make_scoped_rbac_objects
from fluentkit.route import RouteMatch, new_route
from fluentkit.utils import concat_string, contain_string, hash_code, remove_string

role, account, binding = make_rbac_objects("fluent-bit", "logging", "fluent-bit", None)
role, account, binding = make_scoped_rbac_objects("fluent-bit", "logging")

route = new_route("main", "logging", "app-config", [RouteMatch(namespaces=["b", "a"])])
print(route.label)  # "@" followed by a hex MD5 digest, equal to route.tag

concat_string(["a", "b", "c"], "|")   # "a|b|c"
remove_string(["a", "b", "a"], "a")   # ["b"]
contain_string(["a", "b"], "b")       # True
hash_code("hello")                    # raw 16-byte MD5 digest
```

The manifest builders take the custom resource as a dictionary in its
Kubernetes form (`metadata` and a camelCase `spec`) and return new
dictionaries:

- `fluentkit.fluentbit`: `make_daemonset(fb, log_path)`,
  `make_fluentbit_service(fb)`
- `fluentkit.collector`: `make_collector_statefulset(co)`,
  `make_collector_service(co)`, `make_fluentbit_pvc(co)`,
  `fluentbit_buffer_mount_path(co)`
- `fluentkit.fluentd`: `make_statefulset(fd)`, `make_fluentd_service(fd)`,
  `make_fluentd_pvc(fd)`

```python
from fluentkit.fluentd import make_statefulset

sts = make_statefulset({
    "metadata": {"name": "fluentd", "namespace": "logging"},
    "spec": {"image": "fluentd:latest", "globalInputs": [{"forward": {}}]},
})
```

File watching:

```python
from fluentkit.filenotify import new_watcher

watcher = new_watcher(poll=True, interval=1.0)
watcher.add("/fluent-bit/config")
event = watcher.events.get()   # Event(name=..., op=Op.WRITE)
watcher.close()
```

`new_file_watcher(interval)` prefers `EventWatcher` and falls back to
`PollingWatcher`. Both are context managers. `add` raises `FileNotFoundError`
for a missing path and `ValueError` for a path already watched; `remove`
raises `NoSuchWatchError`; either raises `PollerClosedError` after `close`.

The supervisors can be driven from Python too: `FluentBitWatcher(...).run(watcher)`
and `FluentdWatcher(...).run(watcher)` run until the process side or the
watcher side ends.

## What it does not do

fluentkit does not talk to a Kubernetes cluster. The manifest builders only
return dictionaries; nothing here creates, patches or deletes objects,
watches custom resources or reconciles them. It also does not render Fluent
Bit or Fluentd configuration files.

## Running the tests

```
pip install "fluentkit[test]"
pytest
```