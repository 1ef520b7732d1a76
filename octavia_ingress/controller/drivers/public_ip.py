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
from octavia_ingress.controller.drivers import base
from octavia_ingress import exceptions as k_exc
from octavia_ingress import utils

LOG = logging.getLogger(__name__)


class FloatingIPManager(object):
    """Floating IP of the load balancer VIP port."""

    def get_port_ip(self, port_id):
        os_net = clients.get_network_client()
        return base.find_one('floating_ip', os_net.ips(port_id=port_id),
                             port_id=port_id)

    def allocate_ip(self, network_id, port_id, description):
        os_net = clients.get_network_client()
        try:
            fip = os_net.create_ip(floating_network_id=network_id,
                                   port_id=port_id,
                                   description=description)
        except os_exc.SDKException:
            LOG.exception("Failed to create floating IP - netid=%s ",
                          network_id)
            raise
        LOG.info("Allocated floating IP %s for port %s",
                 fip.floating_ip_address, port_id)
        return fip

    def free_ip(self, res_id):
        os_net = clients.get_network_client()
        try:
            os_net.delete_ip(res_id)
        except os_exc.NotFoundException:
            LOG.debug("Floating IP %s already deleted", res_id)
        except os_exc.SDKException:
            LOG.error("Failed to delete floating_ip_id =%s !", res_id)
            raise

    def _update(self, res_id, port_id, **kwargs):
        os_net = clients.get_network_client()
        try:
            return os_net.update_ip(res_id, port_id=port_id, **kwargs)
        except os_exc.ConflictException:
            LOG.warning("Conflict when assigning floating IP with id %s. "
                        "Checking if it's already assigned correctly.", res_id)
            try:
                fip = os_net.get_ip(res_id)
            except os_exc.NotFoundException:
                LOG.exception("Failed to get FIP %s - it doesn't exist.",
                              res_id)
                raise

            if fip.port_id == port_id:
                LOG.debug('FIP %s already assigned to %s', res_id, port_id)
                return fip
            LOG.exception('Failed to assign FIP %s to port %s. It is '
                          'probably already bound', res_id, port_id)
            raise

    def associate(self, res_id, port_id, description=None):
        kwargs = {}
        if description is not None:
            kwargs['description'] = description
        return self._update(res_id, port_id, **kwargs)

    def disassociate(self, res_id):
        return self._update(res_id, None)

    def _find_requested_ip(self, address, network_id):
        os_net = clients.get_network_client()
        fips = list(os_net.ips(floating_ip_address=address,
                               floating_network_id=network_id))
        if len(fips) != 1:
            raise k_exc.FloatingIPUnavailable(
                address, '%d floating IPs found on network %s' % (
                    len(fips), network_id))
        return fips[0]

    def ensure(self, port_id, network_id, description, floating_ip=None):
        """Ensures the port has a floating IP.

        :param floating_ip: address the user requested, a new floating IP
                            is allocated when it is not given
        :returns: the floating IP address
        """
        current = self.get_port_ip(port_id)

        if not floating_ip:
            if current is None:
                current = self.allocate_ip(network_id, port_id, description)
            return current.floating_ip_address

        requested = self._find_requested_ip(floating_ip, network_id)
        if requested.port_id == port_id:
            return requested.floating_ip_address
        if requested.port_id:
            raise k_exc.FloatingIPUnavailable(
                floating_ip, 'already used by port %s' % requested.port_id)

        with utils.UndoStack() as undo:
            if current is not None:
                # A port can't have two floating IPs from the same network.
                self.disassociate(current.id)
                undo.push(self.associate, current.id, port_id)
            self.associate(requested.id, port_id, description)
        LOG.info("Associated floating IP %s with port %s", floating_ip,
                 port_id)
        return requested.floating_ip_address

    def release(self, port_id):
        """Deletes all the floating IPs of the port."""
        os_net = clients.get_network_client()
        for fip in list(os_net.ips(port_id=port_id)):
            self.free_ip(fip.id)
            LOG.info("Released floating IP %s of port %s",
                     fip.floating_ip_address, port_id)
