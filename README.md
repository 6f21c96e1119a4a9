# freyr

freyr scales a pool of worker processes toward a target that changes
over time. A *ship* describes the desired setup. A *captain* keeps count
of the workers that report in. *Conscripts* are the workers. Each one
enlists with its captain once a second.

The target number of conscripts comes from one of two modes:

- **trig**: a sine wave between a minimum and a maximum over a fixed
  period, such as `120s` or `10m`. The wave is anchored to the start of
  the UTC day.
- **weather**: the current temperature in whole degrees Celsius for a
  city, taken from the OpenWeather API.

The package uses only the Python standard library and needs Python 3.10
or later.

## Installation

```
pip install .
```

To install with the test suite and run it:

```
pip install ".[test]"
pytest
```

## Commands

### `freyr-captain`

Starts the captain's HTTP server. It reads its settings from the
environment:

| Variable          | Meaning                                         | Default   |
|-------------------|-------------------------------------------------|-----------|
| `OPERATOR_CONFIG` | JSON operator spec (`mode`, `trig`, `weather`)  | required  |
| `HOST_NAME`       | address to bind                                 | `0.0.0.0` |
| `HOST_PORT`       | port to bind                                    | `5001`    |
| `NAME`            | ship name shown on the docket                   |           |
| `NAMESPACE`       | ship namespace shown on the HTML docket         |           |

If `OPERATOR_CONFIG` is missing or is not valid JSON, or `HOST_PORT` is
not a number, the command logs the error and exits with status 1.

Endpoints:

- `GET /enlist` records the caller's address and port as a conscript, or
  refreshes its last-seen time.
- `GET /conscripts` returns the docket as JSON. The docket holds the
  operator spec under `operator`, the ship name, each conscript's
  last-seen time, the current trig `target` (left out when it is zero)
  and the `actual` count. The target is always computed from the trig
  settings. If their duration cannot be parsed, the endpoint answers 500
  with `{"Message": "error calculating the target conscripts"}`.
- `GET /` returns an HTML docket with the name, namespace, mode, target,
  actual count and a table of conscripts. In trig mode it also shows a
  text chart of the wave.

Any other path answers 404. A background thread runs every three
seconds and removes conscripts that have not enlisted for more than
three seconds. Each request is logged as one JSON line.

Example `OPERATOR_CONFIG`:

```json
{"mode": "trig", "trig": {"duration": "120s", "min": 5, "max": 20}}
```

### `freyr-conscript`

Starts a conscript. It calls `GET <CAPTAIN_URL>/enlist` once a second
and serves `GET /`, which returns `{"status": "okay"}`.

| Variable      | Meaning                  | Default                     |
|---------------|--------------------------|-----------------------------|
| `CAPTAIN_URL` | base URL of the captain  | `http://freyr-captain:5001` |
| `HOST_NAME`   | address to bind          | `0.0.0.0`                   |
| `HOST_PORT`   | port to bind             | `5003`                      |

Stop either server with Ctrl-C.

### `freyr-cli`

```
freyr-cli            # same as: freyr-cli trig
freyr-cli weather
```

`trig` prints a text chart of a 120-second wave between 5 and 20. A `|`
column marks the current position and `#` marks the point on the curve.
`weather` looks up the current temperature in Melbourne, AU, using the
API key in the `OWK` environment variable. It prints the result, or an
error and exit status 1.

## Library

- `freyr.spec` holds the data model: `OperatorSpec`, `TrigMode`,
  `WeatherMode`, `ShipSpec`, `PodSpec` and `Ship`.
  - `parse_operator_spec` reads the captain's JSON configuration and
    raises `ValueError` if it is malformed.
  - `ship_spec_from_dict` builds a `ShipSpec` from its object form.
  - `ShipSpec.to_json` writes compact JSON with sorted map keys.
    `OperatorSpec.to_dict` and `ShipSpec.to_dict` give the object forms.
- `freyr.trig` computes the wave.
  - `get_value(TrigArgs(...), now)` gives the wave's value scaled onto
    `[min, max]`.
  - `render_chart` draws one period. It returns `"could not render
    chart"` when the duration cannot be parsed.
  - `parse_duration` turns strings such as `1h30m`, `90s` or `1.5m` into
    seconds.
  - `translate`, `seconds_since_increment` and `calculate_angle` are the
    pieces underneath.
- `freyr.openweather` does the weather lookup.
  - `get_lat_lon` resolves a `Location` to coordinates.
  - `get_temp` adds the current temperature, truncated to an integer.
  - `get_temp_by_country` does both.
  - Failures raise `OpenWeatherError`.
- `freyr.resources` builds a ship's objects as plain dictionaries in
  Kubernetes manifest shape.
  - `config_map_for`, `captain_deployment`, `captain_service` and
    `conscript_deployment` build the config map, the two deployments and
    the service.
  - `captain_url` gives the captain service's in-cluster URL.
  - `set_controller_reference` adds the ship as the object's owner.
- `freyr.controller` does the reconciling.
  - `ShipReconciler.reconcile(Request(name, namespace))` makes one step
    of progress per call. It creates the config map, the captain
    deployment, the captain service and the conscript deployment, in that
    order and one per call.
  - Once all four exist, a call rewrites the config map when the captain
    URL or the spec has changed, and stamps the captain's pod template
    with a restart time. It keeps the captain at one replica and sets the
    conscript replica count to the target. In weather mode the target is
    the temperature, or 0 if the lookup fails. In trig mode it is the
    wave value. Otherwise it is 1.
  - `InMemoryClient` is the object store it works against.
  - `ignore_replicas_only_update` tells whether two deployments differ in
    more than their replica count.
- `freyr.captain` provides `CaptainController`, which covers roster,
  docket and purging, together with `CaptainMetrics` and `make_server`.
- `freyr.conscript` provides `enlist_request`, `schedule_conscription`
  and `make_server`.
- `freyr.httplog` provides `RequestRecord` and `format_latency` for
  structured request log lines.

Driving a ship through reconciliation in memory:

```python
from freyr.controller import InMemoryClient, Request, ShipReconciler
from freyr.spec import Ship, ShipSpec, TrigMode

client = InMemoryClient()
client.create("Ship", Ship(name="demo", namespace="default",
                           spec=ShipSpec(mode="trig", trig=TrigMode("120s", 5, 20))))
reconciler = ShipReconciler(client)
for _ in range(5):
    reconciler.reconcile(Request("demo", "default"))
print(client.get("Deployment", "default", "demo-conscript")["spec"]["replicas"])
```

## What it does not do

- The reconciler does not talk to a Kubernetes cluster. There is no API
  client, no watch loop, no leader election and no custom resource
  definition. It works against `InMemoryClient` or any object with the
  same `get`, `create`, `update` and `delete` methods.
- Metrics and traces are not exported. `CaptainMetrics.observe` returns
  the current values in process, and nothing serves or pushes them.