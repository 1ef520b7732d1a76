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
import os
import sys

from keystoneauth1 import loading as ks_loading
from oslo_config import cfg
from oslo_log import log as logging

from octavia_ingress._i18n import _
from octavia_ingress import version

LOG = logging.getLogger(__name__)

ingress_opts = [
    cfg.StrOpt('cluster_name',
               help=_('Name of the Kubernetes cluster. It is part of the '
                      'names given to the OpenStack resources created for '
                      'every Ingress.'),
               default='kubernetes'),
    cfg.StrOpt('ingress_class',
               help=_('Value of the kubernetes.io/ingress.class annotation '
                      'an Ingress needs to carry to be handled by this '
                      'controller.'),
               default='openstack'),
    cfg.IntOpt('node_sync_period',
               help=_('Period (in seconds) between two checks of the set '
                      'of ready cluster nodes. When the set changes, pool '
                      'members of all the managed load balancers are '
                      'updated.'),
               default=60),
    cfg.IntOpt('max_retries',
               help=_('Number of times processing of a single Ingress event '
                      'is retried before it is dropped.'),
               default=5),
]

k8s_opts = [
    cfg.StrOpt('api_root',
               help=_("The root URL of the Kubernetes API"),
               default=os.environ.get('K8S_API', 'https://localhost:6443')),
    cfg.StrOpt('ssl_client_crt_file',
               help=_("Absolute path to client cert to "
                      "connect to HTTPS K8S_API")),
    cfg.StrOpt('ssl_client_key_file',
               help=_("Absolute path client key file to "
                      "connect to HTTPS K8S_API")),
    cfg.StrOpt('ssl_ca_crt_file',
               help=_("Absolute path to ca cert file to "
                      "connect to HTTPS K8S_API"),
               default='/var/run/secrets/kubernetes.io/serviceaccount/ca.crt'),
    cfg.BoolOpt('ssl_verify_server_crt',
                help=_("HTTPS K8S_API server identity verification"),
                default=False),
    cfg.StrOpt('token_file',
               help=_("The token to talk to the k8s API"),
               default='/var/run/secrets/kubernetes.io/serviceaccount/token'),
    cfg.IntOpt('watch_retry_timeout',
               help=_('Time (in seconds) the watcher retries watching for.'),
               default=60),
    cfg.IntOpt('watch_connection_timeout',
               help=_('TCP connection timeout (in seconds) for the watcher '
                      'connections to K8s API.'),
               default=30),
    cfg.IntOpt('watch_read_timeout',
               help=_('TCP read timeout (in seconds) for the watcher '
                      'connections to K8s API. When too low, the controller '
                      'will reconnect more often. When too high, it will '
                      'take longer to reconnect when K8s API stream was '
                      'being silently broken.'),
               default=60),
    cfg.IntOpt('watch_reconcile_period',
               help=_('Period (in seconds) between iterations of fetching '
                      'full list of Ingresses and putting them into the '
                      'handler. Setting 0 disables the periodic '
                      'reconciling.'),
               default=120),
    cfg.BoolOpt('use_events',
                help=_('Use Kubernetes Events objects to indicate status of '
                       'the OpenStack resources created for Ingresses.'),
                default=True),
]

octavia_opts = [
    cfg.StrOpt('subnet_id',
               help=_('ID of the Neutron subnet the load balancer VIPs are '
                      'allocated on. The cluster nodes need to be reachable '
                      'from it.')),
    cfg.StrOpt('floating_network_id',
               help=_('ID of the external network floating IPs for the '
                      'load balancers are allocated from. When not set, '
                      'no floating IP is ever allocated.')),
    cfg.StrOpt('provider',
               help=_('Octavia provider used to create the load balancers.'),
               default='octavia'),
    cfg.StrOpt('flavor_id',
               help=_('Octavia flavor used to create the load balancers.')),
    cfg.BoolOpt('manage_security_groups',
                help=_('Create a security group for every Ingress allowing '
                       'the traffic from the load balancer subnet to the '
                       'node ports of the backend services and attach it to '
                       'the ports of the cluster nodes.'),
                default=False),
    cfg.IntOpt('lb_poll_interval',
               help=_('Time (in seconds) between two checks of the load '
                      'balancer provisioning status.'),
               default=3),
    cfg.IntOpt('lb_poll_steps',
               help=_('Maximum number of checks of the load balancer '
                      'provisioning status before giving up waiting for it '
                      'to become ACTIVE.'),
               default=240),
]

openstack_opts = [
    cfg.StrOpt('region_name',
               help=_('Name of the OpenStack region to use.')),
]

CONF = cfg.CONF
CONF.register_opts(ingress_opts, group='ingress')
CONF.register_opts(k8s_opts, group='kubernetes')
CONF.register_opts(octavia_opts, group='octavia')
CONF.register_opts(openstack_opts, group='openstack')
ks_loading.register_session_conf_options(CONF, 'openstack')
ks_loading.register_auth_conf_options(CONF, 'openstack')

logging.register_options(CONF)


def init(args, **kwargs):
    version_ingress = version.version_info.version_string()
    CONF(args=args, project='octavia-ingress', version=version_ingress,
         **kwargs)


def setup_logging():

    logging.setup(CONF, 'octavia-ingress')
    logging.set_defaults(default_log_levels=logging.get_default_log_levels())
    version_ingress = version.version_info.version_string()
    LOG.info("Logging enabled!")
    LOG.info("%(prog)s version %(version)s",
             {'prog': sys.argv[0], 'version': version_ingress})
