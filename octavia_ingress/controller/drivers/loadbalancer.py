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
from oslo_config import cfg
from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import base

CONF = cfg.CONF
LOG = logging.getLogger(__name__)

_CREATE_DESCRIPTION = ('Kubernetes Ingress %s in namespace %s from cluster '
                       '%s')


def get_description(route, resource_version):
    """Description stamped on a load balancer after a successful pass."""
    return k_const.LB_DESCRIPTION_TEMPLATE % (
        route.name, route.namespace, route.cluster_name, resource_version)


class LoadBalancerManager(base.LoadBalancerChildManager):
    """Manages the Octavia load balancer of an Ingress.

    The load balancer is looked up by its name derived from the Ingress, so
    no state needs to be kept between passes or process restarts. Its
    description carries the resourceVersion of the last Ingress version that
    was fully reconciled.
    """

    def find(self, name):
        lbaas = clients.get_loadbalancer_client()
        return base.find_one('loadbalancer', lbaas.load_balancers(name=name),
                             name=name)

    def ensure(self, name, route):
        """Ensures the load balancer exists and is ACTIVE.

        :returns: the ACTIVE openstacksdk LoadBalancer
        """
        loadbalancer = self.find(name)
        if loadbalancer is None:
            lbaas = clients.get_loadbalancer_client()
            request = {
                'name': name,
                'description': _CREATE_DESCRIPTION % (
                    route.name, route.namespace, route.cluster_name),
                'vip_subnet_id': CONF.octavia.subnet_id,
                'provider': CONF.octavia.provider,
            }
            if CONF.octavia.flavor_id:
                request['flavor_id'] = CONF.octavia.flavor_id
            loadbalancer = lbaas.create_load_balancer(**request)
            LOG.info("Creating loadbalancer %s (%s) for Ingress %s",
                     name, loadbalancer.id, route.key)
        else:
            LOG.debug("Loadbalancer %s (%s) exists", name, loadbalancer.id)

        return self._wait_for_active(loadbalancer.id)

    def is_up_to_date(self, loadbalancer, route):
        if not route.resource_version:
            return False
        marker = 'version: %s' % route.resource_version
        return (loadbalancer.description or '').endswith(marker)

    def update_description(self, loadbalancer_id, description):
        lbaas = clients.get_loadbalancer_client()
        lbaas.update_load_balancer(loadbalancer_id, description=description)
        LOG.debug("Loadbalancer %s description updated", loadbalancer_id)
        return self._wait_for_active(loadbalancer_id)

    def delete(self, loadbalancer):
        """Deletes the load balancer together with all its children."""
        lbaas = clients.get_loadbalancer_client()
        try:
            lbaas.delete_load_balancer(loadbalancer.id, cascade=True)
        except os_exc.NotFoundException:
            return
        LOG.info("Deleting loadbalancer %s (%s)", loadbalancer.name,
                 loadbalancer.id)
        self._poller.wait_for_deletion(loadbalancer.id)
