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

from oslo_log import log as logging

from octavia_ingress import clients
from octavia_ingress import constants as k_const
from octavia_ingress.controller.drivers import base

LOG = logging.getLogger(__name__)


class ListenerManager(base.LoadBalancerChildManager):
    """Manages the single listener of an Ingress load balancer.

    The listener is HTTP on port 80, or TERMINATED_HTTPS on port 443 when
    TLS certificate references are given. In the latter case the first
    reference is the default certificate and all of them are offered
    through SNI.
    """

    def find(self, name, loadbalancer_id):
        lbaas = clients.get_loadbalancer_client()
        return base.find_one(
            'listener',
            lbaas.listeners(name=name, load_balancer_id=loadbalancer_id),
            name=name, load_balancer_id=loadbalancer_id)

    def _get_request(self, name, loadbalancer_id, secret_refs,
                     allowed_cidrs, timeouts):
        request = {
            'name': name,
            'load_balancer_id': loadbalancer_id,
            'protocol': k_const.LISTENER_PROTOCOL_HTTP,
            'protocol_port': k_const.LISTENER_PORT_HTTP,
        }
        if secret_refs:
            request['protocol'] = k_const.LISTENER_PROTOCOL_HTTPS
            request['protocol_port'] = k_const.LISTENER_PORT_HTTPS
            request['default_tls_container_ref'] = secret_refs[0]
            request['sni_container_refs'] = list(secret_refs)
        if allowed_cidrs:
            request['allowed_cidrs'] = list(allowed_cidrs)
        request.update(timeouts or {})
        return request

    def _get_update(self, listener, request):
        update = {}
        for attr in ('allowed_cidrs', 'sni_container_refs'):
            if (attr in request and
                    sorted(getattr(listener, attr) or []) !=
                    sorted(request[attr])):
                update[attr] = request[attr]
        for attr in ('default_tls_container_ref', 'timeout_client_data',
                     'timeout_member_connect', 'timeout_member_data',
                     'timeout_tcp_inspect'):
            if attr in request and getattr(listener, attr) != request[attr]:
                update[attr] = request[attr]
        return update

    def ensure(self, name, loadbalancer_id, secret_refs=None,
               allowed_cidrs=None, timeouts=None):
        """Ensures the listener exists and matches the request.

        :returns: the openstacksdk Listener
        """
        lbaas = clients.get_loadbalancer_client()
        request = self._get_request(name, loadbalancer_id, secret_refs,
                                    allowed_cidrs, timeouts)

        listener = self.find(name, loadbalancer_id)
        if listener is not None and (
                listener.protocol != request['protocol'] or
                listener.protocol_port != request['protocol_port']):
            # Protocol of a listener can't be changed, TLS got added or
            # removed from the Ingress.
            LOG.info("Recreating listener %s (%s) as %s:%s", name,
                     listener.id, request['protocol'],
                     request['protocol_port'])
            lbaas.delete_listener(listener.id)
            self._wait_for_active(loadbalancer_id)
            listener = None

        if listener is None:
            listener = lbaas.create_listener(**request)
            LOG.info("Creating listener %s (%s) on loadbalancer %s", name,
                     listener.id, loadbalancer_id)
        else:
            update = self._get_update(listener, request)
            if update:
                LOG.debug("Updating listener %s: %s", listener.id, update)
                listener = lbaas.update_listener(listener.id, **update)

        self._wait_for_active(loadbalancer_id)
        return listener
