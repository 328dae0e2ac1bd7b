import threading


class Poller(threading.Thread):
    def __init__(self, interval, execute, *args, **kwargs):
        threading.Thread.__init__(self)
        # Make the thread a daemon so it dies when the main thread exits
        self.daemon = True
        self._stop_event = threading.Event()
        self.interval = interval
        self.execute = execute
        self.args = args
        self.kwargs = kwargs

    def stop(self):
        self._stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join()

    @property
    def stopped(self):
        return self._stop_event.is_set()

    def run(self):
        while not self._stop_event.wait(self.interval.total_seconds()):
            self.execute(*self.args, **self.kwargs)
