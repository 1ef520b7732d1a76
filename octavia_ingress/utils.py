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

import hashlib
import os
import random
import re
import socket
import time

from oslo_config import cfg
from oslo_log import log

from octavia_ingress import constants
from octavia_ingress import exceptions

CONF = cfg.CONF
LOG = log.getLogger(__name__)

DEFAULT_INTERVAL = 1
DEFAULT_JITTER = 3
MAX_BACKOFF = 60
MAX_ATTEMPTS = 10

PROVIDER_ID_RE = re.compile(constants.K8S_PROVIDER_ID_PATTERN)


def get_api_ver(path):
    """Get apiVersion out of resource path.

    Path usually is something similar to:

        /api/v1/namespaces/default/services/backend

    in case of core resources, and:

        /apis/networking.k8s.io/v1/namespaces/default/ingresses/web

    in case of resources from API groups.
    """
    if path.startswith('/api/'):
        return path.split('/')[2]

    if path.startswith('/apis/'):
        return '/'.join(path.split('/')[2:4])

    raise ValueError('Provided path is not Kubernetes api path: %s', path)


def get_res_unique_name(resource):
    """Returns a unique name for the resource like Ingress or Node.

    It returns a unique name for the resource composed of its name and the
    namespace it is created in or just name for cluster-scoped resources.

    :returns: String with <namespace/>name of the resource
    """
    try:
        return "%(namespace)s/%(name)s" % resource['metadata']
    except KeyError:
        return "%(name)s" % resource['metadata']


def is_ingress_valid(ingress):
    """Tells whether the Ingress should be handled by this controller."""
    annotations = ingress.get('metadata', {}).get('annotations') or {}
    return (annotations.get(constants.K8S_ANNOTATION_INGRESS_CLASS) ==
            CONF.ingress.ingress_class)


def get_resource_name(namespace, name, cluster_name):
    """Name of the OpenStack resources created for an Ingress."""
    return constants.RESOURCE_NAME_TEMPLATE % (cluster_name, namespace, name)


def get_pool_name(service_name, port):
    """Name of the pool forwarding to the given service port.

    The name needs to be unique within a load balancer, so the same
    service port referenced by several rules ends up in a single pool.
    """
    key = '%s+%s' % (service_name, port)
    return hashlib.sha256(key.encode('utf-8')).hexdigest()


def get_node_address(node):
    """Returns the address the load balancer should use to reach a node.

    InternalIP is preferred, otherwise the first reported address is used.
    """
    addresses = node.get('status', {}).get('addresses') or []
    for address in addresses:
        if address.get('type') == constants.K8S_NODE_ADDRESS_INTERNAL_IP:
            return address['address']
    if addresses:
        return addresses[0]['address']
    return None


def get_node_instance_id(node):
    """Returns the Nova instance ID of a node parsed from its providerID."""
    provider_id = node.get('spec', {}).get('providerID', '')
    match = PROVIDER_ID_RE.match(provider_id)
    if not match:
        # NOTE: providerID is set by the cloud provider once the node is
        # initialized, so this can fix itself.
        LOG.warning('Node %s has unexpected providerID %r.',
                    node['metadata']['name'], provider_id)
        raise exceptions.ResourceNotReady(node)
    return match.group(1)


def exponential_sleep(deadline, attempt, interval=DEFAULT_INTERVAL,
                      max_backoff=MAX_BACKOFF, jitter=DEFAULT_JITTER):
    """Sleep for exponential duration.

    :param deadline: sleep timeout duration in seconds.
    :param attempt: attempt count of sleep function.
    :param interval: minimal time interval to sleep
    :param max_backoff: maximum time to sleep
    :param jitter: max value of jitter added to the sleep time
    :return: the actual time that we've slept
    """
    now = time.time()
    seconds_left = deadline - now

    if seconds_left <= 0:
        return 0

    to_sleep = exponential_backoff(attempt, interval, max_backoff=max_backoff,
                                   jitter=jitter)

    if to_sleep > seconds_left:
        to_sleep = seconds_left

    if to_sleep < interval:
        to_sleep = interval

    time.sleep(to_sleep)
    return to_sleep


def exponential_backoff(attempt, interval=DEFAULT_INTERVAL,
                        max_backoff=MAX_BACKOFF, jitter=DEFAULT_JITTER):
    """Return exponential backoff duration with jitter.

    This implements a variation of exponential backoff algorithm [1] (expected
    backoff E(c) = interval * 2 ** attempt / 2).

    [1] https://en.wikipedia.org/wiki/Exponential_backoff
    """

    if attempt >= MAX_ATTEMPTS:
        # No need to calculate very long intervals
        attempt = MAX_ATTEMPTS

    backoff = 2 ** attempt * interval

    if max_backoff is not None and backoff > max_backoff:
        backoff = max_backoff

    if jitter:
        backoff += random.randint(0, jitter)

    return backoff


def get_nodename():
    # NOTE: At first try to get it using environment variable, otherwise
    # assume hostname is the nodename.
    try:
        nodename = os.environ['KUBERNETES_NODE_NAME']
    except KeyError:
        # NOTE: By default K8s nodeName is lowercased hostname.
        nodename = socket.gethostname().lower()
    return nodename


class UndoStack(object):
    """Ordered list of compensating actions unwound on failure.

    Every step of a multi-step acquisition pushes the action undoing it.
    When the ``with`` block raises, the pushed actions are run in reverse
    order and the original exception is propagated. When the block succeeds
    the actions are discarded.
    """

    def __init__(self):
        self._actions = []

    def push(self, func, *args, **kwargs):
        self._actions.append((func, args, kwargs))

    def unwind(self):
        while self._actions:
            func, args, kwargs = self._actions.pop()
            try:
                func(*args, **kwargs)
            except Exception:
                LOG.exception('Failed to undo %s%s.', func, args)

    def __len__(self):
        return len(self._actions)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        if exc_type is not None:
            self.unwind()
        self._actions = []
        return False
