# darkroom

Building blocks for an image proxy: storage backends that fetch source
images, a circuit breaker that guards network calls, and a manipulator that
drives an image processor through resize, crop, blur, rotation and format
rules.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Storage backends

Every backend offers `get(path)` and `get_partially(path, options)` and
returns a `darkroom.storage.types.Response`. A response carries `data`, an
HTTP-style `status`, an `error` (or `None`) and, for partial reads, a
`metadata` field holding a `ResponseMetadata` with the range headers.
Failures are reported in the response, not raised.

- `darkroom.storage.webfolder.WebFolderStorage` fetches `base_url + path`.
  Range requests are ignored and the whole object is returned.
- `darkroom.storage.cloudfront.CloudfrontStorage` fetches from a host over
  HTTP or HTTPS (`secure_protocol`). `url_for(path)` builds the URL; a
  trailing slash on the host and a missing leading slash on the path are
  handled. A 403 reply becomes an error response. Partial reads send a
  `Range` header and copy the reply's range headers into the metadata.
- `darkroom.storage.s3.S3Storage` reads objects from a bucket, signing its
  own requests, through a named circuit breaker. `status_code_from_error`
  turns an error mentioning `status code: NNN` into that status, and any
  other error into 422.
- `darkroom.storage.gcs.GCSStorage` reads objects from a bucket through the
  storage JSON API. If `credentials_json` holds an `access_token`, it is
  sent as a bearer token. `parse_range("bytes=100-200")` gives the offset
  and length `(100, 101)`; a malformed range raises `InvalidRangeError`.

HTTP requests go through `darkroom.storage.http_client.HttpClient`. Its
timeout and failure thresholds come from a `HystrixCommand` holding a
`CommandConfig`. Circuit breakers are shared by name through
`darkroom.storage.circuit.breaker_for`, and `make_network_call` runs a
function through one with a fallback. An open circuit raises
`CircuitOpenError`.

```python
from darkroom.service.dependencies import new_cloudfront_storage
from darkroom.storage.types import CommandConfig, GetPartiallyRequestOptions, HystrixCommand

command = HystrixCommand(name="cloudfront", config=CommandConfig(timeout=5000))
storage = new_cloudfront_storage("images.example.com", True, command)

response = storage.get_partially("/cats/1.png", GetPartiallyRequestOptions(range="bytes=0-99"))
if response.error is None:
    print(response.status, response.metadata.content_range)
```

`darkroom.service.dependencies` also offers `new_http_client` and
`new_web_folder_storage`.

## Image manipulation

`darkroom.service.spec.SpecBuilder` builds a `ProcessSpec` from a scope,
image bytes, request parameters and the formats the caller accepts.
`ProcessSpec.is_webp_supported()` tells whether `image/webp` is among them.

`darkroom.service.manipulator.Manipulator(processor, default_params,
metric_service)` runs a processor over a spec and returns the encoded bytes:

- `w` and `h` with `fit=crop` (anchored by `crop=top,left` and the like, see
  `CropPoint` and `crop_point`), with `fit=scale`, or with no `fit` for a
  plain resize; `clean_int` keeps sizes between 0 and 9999
- `mono=000000` for grayscale, `blur=<radius>` (wrapped below 1000),
  `flip=<mode>`, `rot=<angle>` (wrapped below 360), both parsed with
  `clean_float`
- `auto=compress` fixes orientation using the JPEG EXIF orientation;
  `auto=format` switches to WebP where the caller accepts it, and from WebP
  to PNG where it does not

Default parameters such as `auto=compress` are parsed from `key=value`
entries with `darkroom.service.dependencies.default_params` and merged into
each request with `join_params`. A request value for a key that also has a
default is appended after it, separated by a comma.

## What this package does not do

- It has no image codec or image operations of its own. `Manipulator` needs
  a processor object with `decode`, `encode`, `crop`, `resize`, `scale`,
  `grayscale`, `blur`, `flip`, `rotate` and `fix_orientation` methods.
- It has no metrics backend. A metric service, if given, must have a
  `track_duration(name, start, data)` method.
- It has no HTTP server, command-line program or configuration loading. The
  pieces have to be wired together by the application that uses them.