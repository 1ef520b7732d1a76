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

from openstack import exceptions as os_exc
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import base
from octavia_ingress import exceptions as k_exc
from octavia_ingress import utils

LOG = logging.getLogger(__name__)


class PoolManager(base.LoadBalancerChildManager):
    """Manages the pools of an Ingress load balancer and their members.

    A pool is either the default pool of the listener or a shared pool
    bound only to the load balancer and reachable through L7 policies.
    Members are always replaced in a single batch request, one member per
    node listening on the node port of the backend service.
    """

    def find(self, name, loadbalancer_id):
        lbaas = clients.get_loadbalancer_client()
        return base.find_one(
            'pool', lbaas.pools(name=name, loadbalancer_id=loadbalancer_id),
            name=name, loadbalancer_id=loadbalancer_id)

    def _get_members(self, pool_name, node_port, nodes):
        members = []
        for node in nodes:
            name = node['metadata']['name']
            address = utils.get_node_address(node)
            if not address:
                LOG.warning("Node %s has no address, not adding it to pool "
                            "%s.", name, pool_name)
                continue
            members.append({'name': name,
                            'address': address,
                            'protocol_port': node_port})
        if not members:
            # Octavia misbehaves with pools without members.
            raise k_exc.NoAvailableNodes(pool_name)
        return members

    def _batch_update_members(self, pool_id, members):
        lbaas = clients.get_loadbalancer_client()
        response = lbaas.put('/lbaas/pools/%s/members' % pool_id,
                             json={'members': members}, raise_exc=False)
        os_exc.raise_from_response(response)

    def ensure(self, name, loadbalancer_id, listener_id, node_port, nodes):
        """Ensures the pool exists with one member per node.

        :param listener_id: ID of the listener the pool should be default
                            pool of or None for a shared pool.
        :returns: ID of the pool
        """
        members = self._get_members(name, node_port, nodes)
        lbaas = clients.get_loadbalancer_client()

        pool = self.find(name, loadbalancer_id)
        if pool is None:
            request = {
                'name': name,
                'protocol': k_const.POOL_PROTOCOL,
                'lb_algorithm': k_const.POOL_LB_ALGORITHM,
            }
            if listener_id:
                request['listener_id'] = listener_id
            else:
                request['loadbalancer_id'] = loadbalancer_id
            pool = lbaas.create_pool(**request)
            LOG.info("Creating pool %s (%s) on loadbalancer %s", name,
                     pool.id, loadbalancer_id)
        elif listener_id and listener_id not in {
                listener['id'] for listener in pool.listeners or []}:
            # The listener got recreated, reattach its default pool.
            LOG.debug("Setting pool %s as default pool of listener %s",
                      pool.id, listener_id)
            self._wait_for_active(loadbalancer_id)
            lbaas.update_listener(listener_id, default_pool_id=pool.id)

        self._wait_for_active(loadbalancer_id)
        self._batch_update_members(pool.id, members)
        self._wait_for_active(loadbalancer_id)
        LOG.debug("Pool %s members updated: %s", pool.id,
                  [m['name'] for m in members])
        return pool.id

    def delete(self, name, loadbalancer_id):
        """Deletes the pool, its members go away with it."""
        pool = self.find(name, loadbalancer_id)
        if pool is None:
            return
        self._delete(pool.id, loadbalancer_id)

    def _delete(self, pool_id, loadbalancer_id):
        lbaas = clients.get_loadbalancer_client()
        try:
            lbaas.delete_pool(pool_id)
        except os_exc.NotFoundException:
            return
        LOG.info("Deleting pool %s from loadbalancer %s", pool_id,
                 loadbalancer_id)
        self._wait_for_active(loadbalancer_id)

    def delete_stale_default(self, loadbalancer_id, listener, name=None):
        """Deletes the default pool of the listener unless it is named name.

        A listener can't get another default pool while it has one.
        """
        if not listener.default_pool_id:
            return
        lbaas = clients.get_loadbalancer_client()
        try:
            pool = lbaas.get_pool(listener.default_pool_id)
        except os_exc.NotFoundException:
            return
        if pool.name != name:
            self._delete(pool.id, loadbalancer_id)

    def delete_shared_pools(self, loadbalancer_id):
        """Deletes every pool of the load balancer not bound to a listener."""
        lbaas = clients.get_loadbalancer_client()
        for pool in list(lbaas.pools(loadbalancer_id=loadbalancer_id)):
            if pool.listeners:
                continue
            self._delete(pool.id, loadbalancer_id)

    def update_loadbalancer_members(self, loadbalancer_id, nodes):
        """Replaces the members of every pool with the given nodes."""
        if not nodes:
            LOG.debug("No nodes given, keeping the members of loadbalancer "
                      "%s.", loadbalancer_id)
            return
        lbaas = clients.get_loadbalancer_client()
        for pool in list(lbaas.pools(loadbalancer_id=loadbalancer_id)):
            members = list(lbaas.members(pool.id))
            if not members:
                LOG.warning("Pool %s has no members, can't tell its node "
                            "port.", pool.id)
                continue
            # All the members of a pool use the same node port.
            node_port = members[0].protocol_port
            self._wait_for_active(loadbalancer_id)
            self._batch_update_members(
                pool.id, self._get_members(pool.name, node_port, nodes))
            self._wait_for_active(loadbalancer_id)
            LOG.info("Members of pool %s on loadbalancer %s updated",
                     pool.id, loadbalancer_id)
