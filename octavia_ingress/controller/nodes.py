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

import threading

from oslo_log import log as logging

from octavia_ingress import config
from octavia_ingress import constants
from octavia_ingress.controller import kube
from octavia_ingress import exceptions as k_exc
from octavia_ingress.objects import route as route_obj
from octavia_ingress import utils

LOG = logging.getLogger(__name__)


def is_node_ready(node):
    """Tells whether the node can take load balancer traffic."""
    if node.get('spec', {}).get('unschedulable'):
        return False
    labels = node.get('metadata', {}).get('labels') or {}
    if (constants.K8S_LABEL_EXCLUDE_FROM_LB in labels or
            constants.K8S_LABEL_NODE_ROLE_MASTER in labels):
        return False
    conditions = node.get('status', {}).get('conditions') or []
    if not conditions:
        return False
    for condition in conditions:
        if (condition.get('type') == constants.K8S_NODE_CONDITION_READY and
                condition.get('status') != 'True'):
            LOG.debug("Ignoring node %s with %s condition status %s",
                      node['metadata']['name'], condition['type'],
                      condition.get('status'))
            return False
    return True


class NodeSetTracker(object):
    """Keeps track of the nodes backing all the Ingress load balancers.

    The set of ready nodes is refreshed periodically, when it changes the
    members of every pool of every Ingress load balancer are replaced.
    """

    def __init__(self, loadbalancers, pools):
        self._loadbalancers = loadbalancers
        self._pools = pools
        self._lock = threading.Lock()
        self._known_nodes = []

    def current_ready_nodes(self):
        nodes = [node for node in kube.list_nodes() if is_node_ready(node)]
        return sorted(nodes, key=lambda node: node['metadata']['name'])

    def known_nodes(self):
        with self._lock:
            return list(self._known_nodes)

    def _set_known_nodes(self, nodes):
        with self._lock:
            self._known_nodes = list(nodes)

    def initialize(self):
        nodes = self.current_ready_nodes()
        self._set_known_nodes(nodes)
        LOG.info("Initial set of ready nodes: %s",
                 [node['metadata']['name'] for node in nodes])

    def _update_members(self, route, cluster_name, nodes):
        name = utils.get_resource_name(route.namespace, route.name,
                                       cluster_name)
        loadbalancer = self._loadbalancers.find(name)
        if loadbalancer is None:
            LOG.debug("Loadbalancer %s of Ingress %s doesn't exist yet",
                      name, route.key)
            return
        self._pools.update_loadbalancer_members(loadbalancer.id, nodes)
        LOG.info("Members of Ingress %s updated", route.key)

    def sync(self):
        nodes = self.current_ready_nodes()
        new_names = {node['metadata']['name'] for node in nodes}
        old_names = {node['metadata']['name'] for node in self.known_nodes()}
        if new_names == old_names:
            return

        LOG.info("Ready nodes changed from %s to %s", sorted(old_names),
                 sorted(new_names))
        if not nodes:
            # Emptying all the pools would break every Ingress at once.
            LOG.warning("No ready nodes found, pool members are not "
                        "updated.")
            self._set_known_nodes(nodes)
            return

        cluster_name = config.CONF.ingress.cluster_name
        for ingress in kube.list_ingresses():
            if not utils.is_ingress_valid(ingress):
                continue
            try:
                route = route_obj.RouteSpec.from_ingress(ingress,
                                                         cluster_name)
            except k_exc.InvalidRouteSpec:
                continue
            try:
                self._update_members(route, cluster_name, nodes)
            except Exception:
                LOG.exception("Failed to update members of Ingress %s",
                              route.key)

        self._set_known_nodes(nodes)
