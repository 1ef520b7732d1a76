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

from unittest import mock

from openstack import exceptions as os_exc
from openstack.network.v2 import floating_ip as os_fip

from octavia_ingress.controller.drivers import public_ip
from octavia_ingress import exceptions as k_exc
from octavia_ingress.tests import base as test_base
from octavia_ingress.tests.unit import ingress_fixtures as k_fix

NETWORK = 'public-net'
DESCRIPTION = 'Floating IP for Kubernetes ingress web'


class TestFloatingIPManagerMocked(test_base.TestCase):

    def setUp(self):
        super(TestFloatingIPManagerMocked, self).setUp()
        self.os_net = self.useFixture(k_fix.MockNetworkClient()).client
        self.manager = public_ip.FloatingIPManager()

    def test_free_ip(self):
        self.manager.free_ip(mock.sentinel.res_id)

        self.os_net.delete_ip.assert_called_once_with(mock.sentinel.res_id)

    def test_free_ip_not_found(self):
        self.os_net.delete_ip.side_effect = os_exc.NotFoundException

        self.manager.free_ip(mock.sentinel.res_id)

    def test_free_ip_error(self):
        self.os_net.delete_ip.side_effect = os_exc.SDKException

        self.assertRaises(os_exc.SDKException, self.manager.free_ip,
                          mock.sentinel.res_id)

    def test_allocate_ip_error(self):
        self.os_net.create_ip.side_effect = os_exc.SDKException

        self.assertRaises(os_exc.SDKException, self.manager.allocate_ip,
                          NETWORK, mock.sentinel.port_id, DESCRIPTION)

    def test_associate_conflict_already_assigned(self):
        self.os_net.update_ip.side_effect = os_exc.ConflictException
        fip = os_fip.FloatingIP(id='fip-id', port_id='port-id')
        self.os_net.get_ip.return_value = fip

        self.assertIs(fip, self.manager.associate('fip-id', 'port-id'))

    def test_associate_conflict_other_port(self):
        self.os_net.update_ip.side_effect = os_exc.ConflictException
        self.os_net.get_ip.return_value = os_fip.FloatingIP(
            id='fip-id', port_id='other-port')

        self.assertRaises(os_exc.ConflictException, self.manager.associate,
                          'fip-id', 'port-id')

    def test_associate_conflict_gone(self):
        self.os_net.update_ip.side_effect = os_exc.ConflictException
        self.os_net.get_ip.side_effect = os_exc.NotFoundException

        self.assertRaises(os_exc.NotFoundException, self.manager.associate,
                          'fip-id', 'port-id')

    def test_associate_description(self):
        self.manager.associate('fip-id', 'port-id', DESCRIPTION)

        self.os_net.update_ip.assert_called_once_with(
            'fip-id', port_id='port-id', description=DESCRIPTION)

    def test_disassociate(self):
        self.manager.disassociate('fip-id')

        self.os_net.update_ip.assert_called_once_with('fip-id', port_id=None)


class TestFloatingIPManager(test_base.TestCase):

    def setUp(self):
        super(TestFloatingIPManager, self).setUp()
        self.cloud = self.useFixture(k_fix.FakeCloud())
        self.network = self.cloud.network
        self.manager = public_ip.FloatingIPManager()

    def test_ensure_allocates(self):
        address = self.manager.ensure('vip-port', NETWORK, DESCRIPTION)

        fip = self.manager.get_port_ip('vip-port')
        self.assertEqual(fip.floating_ip_address, address)
        self.assertEqual(DESCRIPTION, fip.description)
        self.assertEqual(NETWORK, fip.floating_network_id)

    def test_ensure_existing(self):
        first = self.manager.ensure('vip-port', NETWORK, DESCRIPTION)

        second = self.manager.ensure('vip-port', NETWORK, DESCRIPTION)

        self.assertEqual(first, second)
        self.assertEqual(1, len(self.network.floating_ips))

    def test_ensure_requested(self):
        self.network.add_floating_ip('172.24.4.100', NETWORK)

        address = self.manager.ensure('vip-port', NETWORK, DESCRIPTION,
                                      '172.24.4.100')

        self.assertEqual('172.24.4.100', address)
        self.assertEqual('172.24.4.100', self.manager.get_port_ip(
            'vip-port').floating_ip_address)

    def test_ensure_requested_already_associated(self):
        self.network.add_floating_ip('172.24.4.100', NETWORK, 'vip-port')

        address = self.manager.ensure('vip-port', NETWORK, DESCRIPTION,
                                      '172.24.4.100')

        self.assertEqual('172.24.4.100', address)

    def test_ensure_requested_replaces_current(self):
        current = self.network.add_floating_ip('172.24.4.50', NETWORK,
                                               'vip-port')
        self.network.add_floating_ip('172.24.4.100', NETWORK)

        self.manager.ensure('vip-port', NETWORK, DESCRIPTION, '172.24.4.100')

        self.assertIsNone(current.port_id)
        self.assertEqual('172.24.4.100', self.manager.get_port_ip(
            'vip-port').floating_ip_address)

    def test_ensure_requested_used_by_other_port(self):
        self.network.add_floating_ip('172.24.4.100', NETWORK, 'other-port')

        self.assertRaises(k_exc.FloatingIPUnavailable, self.manager.ensure,
                          'vip-port', NETWORK, DESCRIPTION, '172.24.4.100')

    def test_ensure_requested_missing(self):
        self.assertRaises(k_exc.FloatingIPUnavailable, self.manager.ensure,
                          'vip-port', NETWORK, DESCRIPTION, '172.24.4.100')

    def test_ensure_requested_reassociates_current_on_failure(self):
        current = self.network.add_floating_ip('172.24.4.50', NETWORK,
                                               'vip-port')
        requested = self.network.add_floating_ip('172.24.4.100', NETWORK)
        update_ip = self.network.update_ip

        def _update_ip(fip_id, **attrs):
            if fip_id == requested.id:
                raise os_exc.SDKException('boom')
            return update_ip(fip_id, **attrs)

        with mock.patch.object(self.network, 'update_ip',
                               side_effect=_update_ip):
            self.assertRaises(os_exc.SDKException, self.manager.ensure,
                              'vip-port', NETWORK, DESCRIPTION,
                              '172.24.4.100')

        self.assertEqual('vip-port', current.port_id)
        self.assertIsNone(requested.port_id)

    def test_release(self):
        self.manager.ensure('vip-port', NETWORK, DESCRIPTION)

        self.manager.release('vip-port')

        self.assertEqual({}, self.network.floating_ips)

    def test_release_nothing(self):
        self.manager.release('vip-port')
