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

import ipaddress
import os

from keystoneauth1 import loading as ks_loading
from keystoneauth1 import session as k_session
from openstack import connection
from oslo_log import log as logging

from octavia_ingress import config
from octavia_ingress import k8s_client

LOG = logging.getLogger(__name__)

_clients = {}
_KUBERNETES_CLIENT = 'kubernetes-client'
_OPENSTACKSDK = 'openstacksdk'
_OPENSTACK_GROUP = 'openstack'
_KEY_MANAGER_SERVICE = 'key-manager'


def get_network_client():
    return _clients[_OPENSTACKSDK].network


def get_loadbalancer_client():
    return _clients[_OPENSTACKSDK].load_balancer


def get_key_manager_client():
    """Returns the Barbican proxy or None if the cloud doesn't have one."""
    conn = _clients[_OPENSTACKSDK]
    if not conn.has_service(_KEY_MANAGER_SERVICE):
        return None
    return conn.key_manager


def get_kubernetes_client() -> k8s_client.K8sClient:
    return _clients[_KUBERNETES_CLIENT]


def setup_clients():
    setup_kubernetes_client()
    setup_openstacksdk()


def setup_kubernetes_client():
    if config.CONF.kubernetes.api_root:
        api_root = config.CONF.kubernetes.api_root
    else:
        # NOTE: This is for containerized deployments, i.e. running in K8s
        # Pods.
        host = os.environ['KUBERNETES_SERVICE_HOST']
        port = os.environ['KUBERNETES_SERVICE_PORT_HTTPS']
        try:
            addr = ipaddress.ip_address(host)
            if addr.version == 6:
                host = '[%s]' % host
        except ValueError:
            # It's not an IP addres but a hostname, it's fine, move along.
            pass
        api_root = "https://%s:%s" % (host, port)
    _clients[_KUBERNETES_CLIENT] = k8s_client.K8sClient(api_root)


def setup_openstacksdk():
    auth_plugin = ks_loading.load_auth_from_conf_options(
        config.CONF, _OPENSTACK_GROUP)
    session = ks_loading.load_session_from_conf_options(
        config.CONF, _OPENSTACK_GROUP, auth=auth_plugin)

    # NOTE: To get rid of warnings about connection pool being full we need
    # to "tweak" the keystoneauth's adapters increasing the maximum pool size.
    for scheme in list(session.session.adapters):
        session.session.mount(scheme, k_session.TCPKeepAliveAdapter(
            pool_maxsize=100))

    conn = connection.Connection(
        session=session,
        region_name=config.CONF.openstack.region_name)
    _clients[_OPENSTACKSDK] = conn
    if not conn.has_service(_KEY_MANAGER_SERVICE):
        LOG.warning('Key Manager service is not available, Ingresses using '
                    'TLS will not be supported.')
