# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

import contextlib
import datetime
import functools
import os
import ssl
import time
from urllib import parse
import urllib3

from oslo_log import log as logging
from oslo_serialization import jsonutils
import pytz
import requests
from requests import adapters

from octavia_ingress._i18n import _
from octavia_ingress import config
from octavia_ingress import constants
from octavia_ingress import exceptions as exc
from octavia_ingress import utils

CONF = config.CONF
LOG = logging.getLogger(__name__)

_JSON_HEADERS = {'Content-Type': 'application/json',
                 'Accept': 'application/json'}
_MERGE_PATCH_HEADERS = {'Content-Type': 'application/merge-patch+json',
                        'Accept': 'application/json'}

_ERRORS_BY_STATUS = {
    requests.codes.not_found: exc.K8sResourceNotFound,
    requests.codes.conflict: exc.K8sConflict,
    requests.codes.forbidden: exc.K8sForbidden,
}
_NAMESPACE_TERMINATING = 'because it is being terminated'

_WATCH_CONNECTION_ERRORS = (requests.ReadTimeout, requests.ConnectionError,
                            requests.exceptions.ChunkedEncodingError,
                            ssl.SSLError, urllib3.exceptions.SSLError)


class K8sClient(object):
    """Kubernetes API client covering what the Ingress controller needs.

    That is listing and watching Ingresses, reading Nodes, Services and
    Secrets, publishing the Ingress load balancer status and recording
    Events.
    """
    # REVISIT: replace with the official kubernetes client if it could be
    # run under eventlet with 'WATCH' support

    def __init__(self, base_url):
        self._base_url = base_url
        self.token = None
        self.cert = (None, None)
        self.verify_server = config.CONF.kubernetes.ssl_verify_server_crt
        self.are_events_enabled = config.CONF.kubernetes.use_events
        self._load_credentials()
        self.session = self._create_session()

    def _load_credentials(self):
        k8s_conf = config.CONF.kubernetes
        if k8s_conf.token_file:
            if not os.path.exists(k8s_conf.token_file):
                raise RuntimeError(
                    _("Unable to find token_file: %s") % k8s_conf.token_file)
            with open(k8s_conf.token_file, 'r') as f:
                self.token = f.readline().rstrip('\n')
        else:
            for option in ('ssl_client_crt_file', 'ssl_client_key_file'):
                path = getattr(k8s_conf, option)
                if path and not os.path.exists(path):
                    raise RuntimeError(
                        _("Unable to find %(option)s: %(path)s") %
                        {'option': option, 'path': path})
            self.cert = (k8s_conf.ssl_client_crt_file,
                         k8s_conf.ssl_client_key_file)

        if self.verify_server:
            ca_crt_file = k8s_conf.ssl_ca_crt_file
            if not ca_crt_file:
                raise RuntimeError(_("ssl_ca_crt_file cannot be None"))
            if not os.path.exists(ca_crt_file):
                raise RuntimeError(
                    _("Unable to find ssl_ca_crt_file: %s") % ca_crt_file)
            self.verify_server = ca_crt_file

    def _create_session(self):
        session = requests.Session()
        prefix = '%s://' % parse.urlparse(self._base_url).scheme
        session.mount(prefix, adapters.HTTPAdapter(pool_maxsize=100))
        session.cert = self.cert
        session.verify = self.verify_server
        if self.token:
            session.headers['Authorization'] = 'Bearer %s' % self.token
        # NOTE: requests has no session wide timeout setting.
        session.request = functools.partial(
            session.request, timeout=(CONF.kubernetes.watch_connection_timeout,
                                      CONF.kubernetes.watch_read_timeout))
        return session

    def _raise_from_response(self, response):
        if response.ok:
            return
        if (response.status_code == requests.codes.forbidden and
                _NAMESPACE_TERMINATING in response.text):
            raise exc.K8sNamespaceTerminating(response.text)
        error = _ERRORS_BY_STATUS.get(response.status_code,
                                      exc.K8sClientException)
        raise error(response.text)

    @staticmethod
    def _fill_list_items(result, path):
        # Items of a list returned by the API don't have `kind` and
        # `apiVersion` set, e.g. IngressList items lack kind 'Ingress'.
        api_version = result.get('apiVersion') or utils.get_api_ver(path)
        result['apiVersion'] = api_version
        kind = result['kind'][:-len('List')]
        if result['items'] is None:
            result['items'] = []
        for item in result['items']:
            item.setdefault('kind', kind)
            item.setdefault('apiVersion', api_version)

    def get(self, path, json=True, headers=None):
        LOG.debug("Get %(path)s", {'path': path})
        response = self.session.get(self._base_url + path, headers=headers)
        self._raise_from_response(response)
        if not json:
            return response.text

        result = response.json()
        if result['kind'].endswith('List'):
            self._fill_list_items(result, path)
        return result

    def patch_status(self, path, status):
        """Merge-patches the status subresource of the object at path."""
        url = self._base_url + path + '/status'
        LOG.debug("Patch status of %(path)s: %(status)s",
                  {'path': path, 'status': status})
        response = self.session.patch(url, json={'status': status},
                                      headers=_MERGE_PATCH_HEADERS)
        self._raise_from_response(response)
        return response.json()

    def post(self, path, body):
        LOG.debug("Post %(path)s: %(body)s", {'path': path, 'body': body})
        response = self.session.post(self._base_url + path, json=body,
                                     headers=_JSON_HEADERS)
        self._raise_from_response(response)
        return response.json()

    @staticmethod
    def _iter_events(response):
        for line in response.iter_lines():
            line = line.decode('utf-8').strip()
            if line:
                yield jsonutils.loads(line)

    def watch(self, path):
        """Yields the watch events of path forever.

        Connection errors restart the watch from the resourceVersion of the
        last event passed on, after an exponential backoff.
        """
        url = self._base_url + path
        resource_version = None
        attempt = 0
        while True:
            params = {'watch': 'true'}
            if resource_version:
                params['resourceVersion'] = resource_version
            try:
                with contextlib.closing(self.session.get(
                        url, params=params, stream=True)) as response:
                    if not response.ok:
                        raise exc.K8sClientException(response.text)
                    attempt = 0
                    for event in self._iter_events(response):
                        yield event
                        metadata = event.get('object', {}).get('metadata', {})
                        resource_version = metadata.get('resourceVersion')
            except _WATCH_CONNECTION_ERRORS:
                delay = utils.exponential_backoff(attempt)
                # Read timeouts are expected on idle watches.
                log = LOG.warning if attempt else LOG.debug
                log("Connection error when watching %s. Retrying in %ds with "
                    "resourceVersion=%s", path, delay,
                    params.get('resourceVersion'))
                time.sleep(delay)
                attempt += 1

    def _get_hex_timestamp(self, datetimeobj):
        """Get hex representation for timestamp.

        Kubernetes names Events after the involved object and a hexadecimal
        timestamp. Python timestamp is a float, so to get an integer of the
        same precision as the ones coming from K8s it's multiplied by
        100000000 and converted to hex.
        """
        timestamp = datetime.datetime.timestamp(datetimeobj)
        return format(int(timestamp * 100000000), 'x')

    def _build_event(self, resource, reason, message, type_, component):
        metadata = resource['metadata']
        # Without firstTimestamp kubectl shows no LAST SEEN for the Event.
        now = datetime.datetime.now(pytz.UTC)
        return {
            'kind': 'Event',
            'apiVersion': 'v1',
            'firstTimestamp': now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            'metadata': {'name': '%s.%s' % (metadata['name'],
                                            self._get_hex_timestamp(now))},
            'reason': reason,
            'message': message,
            'type': type_,
            'involvedObject': {'apiVersion': resource['apiVersion'],
                               'kind': resource['kind'],
                               'name': metadata['name'],
                               'namespace': metadata['namespace'],
                               'uid': metadata['uid']},
            'source': {'component': component,
                       'host': utils.get_nodename()},
        }

    def add_event(self, resource, reason, message,
                  type_=constants.K8S_EVENT_TYPE_NORMAL,
                  component=constants.INGRESS_EVENT_COMPONENT):
        """Records an Event about the resource.

        Events are informational only, so failures are logged and an empty
        dict is returned instead of raising.
        """
        if not (self.are_events_enabled and resource):
            return {}

        metadata = resource.get('metadata') or {}
        namespace = metadata.get('namespace')
        try:
            event = self._build_event(resource, reason, message, type_,
                                      component)
            return self.post('%s/%s/events' % (constants.K8S_API_NAMESPACES,
                                               namespace), event)
        except exc.K8sNamespaceTerminating:
            # Events can't be created in a Namespace being terminated.
            return {}
        except (exc.K8sClientException, requests.RequestException,
                KeyError) as ex:
            LOG.warning("Failed to record %(type)s Event %(reason)s for "
                        "%(ns)s/%(name)s: %(err)s",
                        {'type': type_, 'reason': reason, 'ns': namespace,
                         'name': metadata.get('name'),
                         'err': ex})
            return {}
