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

import copy

from keystoneauth1 import loading as ks_loading
from oslo_log import _options

from octavia_ingress import config

_ingress_opts = [
    ('ingress', config.ingress_opts),
    ('kubernetes', config.k8s_opts),
    ('octavia', config.octavia_opts),
]


def _openstack_opts():
    opts = copy.deepcopy(config.openstack_opts)
    opts += ks_loading.get_session_conf_options()
    opts += ks_loading.get_auth_common_conf_options()
    opts += ks_loading.get_auth_plugin_conf_options('password')
    return opts


def list_opts():
    """Return a list of oslo_config options available in the controller.

    Each element of the list is a tuple. The first element is the name of the
    group under which the list of elements in the second element will be
    registered. A group name of None corresponds to the [DEFAULT] group in
    config files.

    This function is also discoverable via the 'octavia_ingress' entry point
    under the 'oslo_config.opts' namespace.

    :returns: a list of (group_name, opts) tuples
    """

    return ([(k, copy.deepcopy(o)) for k, o in _ingress_opts] +
            [('openstack', _openstack_opts())] +
            _options.list_opts())
