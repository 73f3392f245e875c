import logging
import os
from flask import Flask, jsonify, render_template_string, request
from flask_socketio import SocketIO

from matchmaker import Event, Matchmaker, SIGNALS

# --- CONFIGURATION ---
# Configure logging for production-grade output
logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def _split(value):
    return [item.strip() for item in value.split(',') if item.strip()]


app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'secret!')
app.config['FRONTEND_URL'] = os.environ.get('FRONTEND_URL', '*')
app.config['ICE_SERVERS'] = _split(os.environ.get(
    'ICE_SERVERS', 'stun:stun.l.google.com:19302,stun:stun1.l.google.com:19302'))

# "*" is used for development convenience; set FRONTEND_URL in production
cors_origins = app.config['FRONTEND_URL']
if cors_origins != '*':
    cors_origins = _split(cors_origins)
socketio = SocketIO(app, cors_allowed_origins=cors_origins)


# --- GLOBAL STATE ---
def notify(event, data, to=None):
    socketio.emit(event, data, to=to)


matchmaker = Matchmaker(notify)

# --- FRONTEND TEMPLATE (HTML/CSS/JS) ---
HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Random Video Chat</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <script src="https://cdnjs.cloudflare.com/ajax/libs/socket.io/4.7.5/socket.io.min.js"></script>
    <link href="https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap" rel="stylesheet">
    <link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css">
    <style>
        body { font-family: 'Inter', sans-serif; }
        /* Only mirror local video, NOT remote video */
        video.mirrored { transform: scaleX(-1); }
        video { background-color: #0f172a; }
        .glass {
            background: rgba(30, 41, 59, 0.7);
            backdrop-filter: blur(10px);
            -webkit-backdrop-filter: blur(10px);
            border: 1px solid rgba(255, 255, 255, 0.05);
        }
    </style>
</head>
<body class="bg-slate-950 text-slate-200 h-screen flex flex-col overflow-hidden">

    <!-- Header -->
    <header class="h-16 glass z-40 flex items-center justify-between px-6 sticky top-0">
        <h1 class="text-lg font-bold bg-clip-text text-transparent bg-gradient-to-r from-white to-slate-400">
            Random<span class="text-indigo-500">Chat</span>
        </h1>
        <div class="flex items-center gap-3 md:gap-6">
            <div class="hidden md:flex items-center gap-2 px-3 py-1.5 rounded-full bg-slate-800/50 border border-slate-700/50 text-xs font-medium text-slate-300">
                <span class="w-2 h-2 bg-emerald-500 rounded-full"></span>
                <span id="userCount">0 online</span>
            </div>
            <div id="status" class="text-xs font-mono text-slate-500 uppercase tracking-widest">Disconnected</div>
        </div>
    </header>

    <main class="flex-1 relative bg-black/40 flex flex-col justify-center items-center p-4 gap-4">
        <div class="relative w-full h-full max-h-[80vh] flex justify-center items-center overflow-hidden rounded-2xl bg-slate-900 shadow-2xl border border-slate-800">
            <video id="remoteVideo" autoplay playsinline class="w-full h-full object-contain"></video>

            <div id="remotePlaceholder" class="absolute inset-0 flex flex-col items-center justify-center text-slate-500">
                <i class="fas fa-video-slash text-5xl opacity-50 mb-6"></i>
                <h3 class="text-2xl font-semibold text-slate-300 mb-2">Ready to connect?</h3>
                <p class="text-slate-500">Click "Start" to find a partner.</p>
            </div>

            <div id="overlay" class="absolute inset-0 bg-slate-950/80 z-10 flex flex-col items-center justify-center hidden backdrop-blur-sm">
                <div class="relative w-16 h-16 mb-4">
                    <div class="absolute inset-0 border-4 border-slate-700 rounded-full"></div>
                    <div class="absolute inset-0 border-4 border-indigo-500 rounded-full border-t-transparent animate-spin"></div>
                </div>
                <p class="text-white text-lg font-medium tracking-wide">Searching...</p>
            </div>
        </div>

        <!-- Self View -->
        <div class="absolute bottom-24 right-6 w-32 md:w-56 aspect-video bg-slate-800 rounded-xl overflow-hidden border-2 border-slate-700/50 shadow-2xl z-20">
            <video id="localVideo" autoplay playsinline muted class="w-full h-full object-cover mirrored"></video>
        </div>

        <div class="flex gap-3">
            <button id="startBtn" class="bg-slate-100 hover:bg-white text-slate-900 font-bold py-3 px-6 rounded-xl">Start</button>
            <button id="nextBtn" class="bg-indigo-600 hover:bg-indigo-500 text-white font-bold py-3 px-6 rounded-xl" disabled>
                Next <i class="fas fa-arrow-right"></i>
            </button>
            <button id="stopBtn" class="bg-slate-800 hover:text-rose-500 border border-slate-700 text-slate-300 font-bold py-3 px-4 rounded-xl" disabled>
                <i class="fas fa-stop"></i>
            </button>
            <button id="toggleMicBtn" class="bg-slate-800 border border-slate-700 text-slate-300 py-3 px-4 rounded-xl" title="Toggle Mic">
                <i class="fas fa-microphone"></i>
            </button>
            <button id="toggleCamBtn" class="bg-slate-800 border border-slate-700 text-slate-300 py-3 px-4 rounded-xl" title="Toggle Cam">
                <i class="fas fa-video"></i>
            </button>
        </div>
    </main>

    <script>
        const socket = io();

        const localVideo = document.getElementById('localVideo');
        const remoteVideo = document.getElementById('remoteVideo');
        const startBtn = document.getElementById('startBtn');
        const nextBtn = document.getElementById('nextBtn');
        const stopBtn = document.getElementById('stopBtn');
        const toggleMicBtn = document.getElementById('toggleMicBtn');
        const toggleCamBtn = document.getElementById('toggleCamBtn');
        const statusEl = document.getElementById('status');
        const overlay = document.getElementById('overlay');
        const remotePlaceholder = document.getElementById('remotePlaceholder');
        const userCountEl = document.getElementById('userCount');

        const peerConnectionConfig = {
            'iceServers': {{ ice_servers|tojson }}.map(url => ({'urls': url}))
        };

        let localStream;
        let peerConnection;
        let partnerId = null;
        let isActive = false;

        // --- 1. MEDIA ---
        async function startCamera() {
            if (!localStream) {
                localStream = await navigator.mediaDevices.getUserMedia({ video: { width: 640 }, audio: true });
                localVideo.srcObject = localStream;
            }
        }

        function toggleTrack(tracks, button, on, off) {
            if (!tracks.length) return;
            const enabled = !tracks[0].enabled;
            tracks.forEach(track => { track.enabled = enabled; });
            button.innerHTML = enabled ? on : off;
        }

        toggleMicBtn.addEventListener('click', () => {
            if (!localStream) return;
            toggleTrack(localStream.getAudioTracks(), toggleMicBtn,
                '<i class="fas fa-microphone"></i>', '<i class="fas fa-microphone-slash text-red-400"></i>');
        });

        toggleCamBtn.addEventListener('click', () => {
            if (!localStream) return;
            toggleTrack(localStream.getVideoTracks(), toggleCamBtn,
                '<i class="fas fa-video"></i>', '<i class="fas fa-video-slash text-red-400"></i>');
        });

        // --- 2. SOCKET EVENTS ---
        socket.on('connect', () => {
            statusEl.innerText = "Connected";
            statusEl.classList.remove('text-amber-500');
            statusEl.classList.add('text-emerald-500');
            if (isActive) join();
        });

        socket.on('disconnect', () => {
            statusEl.innerText = "Reconnecting...";
            statusEl.classList.remove('text-emerald-500');
            statusEl.classList.add('text-amber-500');
            closeConnection();
        });

        socket.on('user_count', (count) => {
            userCountEl.innerText = `${count} online`;
        });

        socket.on('partner_found', async (data) => {
            partnerId = data.partnerId;
            overlay.classList.add('hidden');
            remotePlaceholder.classList.add('hidden');
            createPeerConnection(partnerId);
            // Exactly one side makes the offer
            if (socket.id > partnerId) {
                try {
                    const offer = await peerConnection.createOffer();
                    await peerConnection.setLocalDescription(offer);
                    socket.emit('offer', { target: partnerId, sdp: peerConnection.localDescription });
                } catch (err) { console.error("Offer Error:", err); }
            }
        });

        socket.on('offer', async (data) => {
            partnerId = data.source;
            createPeerConnection(partnerId);
            try {
                await peerConnection.setRemoteDescription(new RTCSessionDescription(data.sdp));
                const answer = await peerConnection.createAnswer();
                await peerConnection.setLocalDescription(answer);
                socket.emit('answer', { target: data.source, sdp: peerConnection.localDescription });
            } catch (err) { console.error("Answer Error:", err); }
        });

        socket.on('answer', async (data) => {
            if (!peerConnection) return;
            try {
                await peerConnection.setRemoteDescription(new RTCSessionDescription(data.sdp));
            } catch (err) { console.error("Signaling error", err); }
        });

        socket.on('ice-candidate', async (data) => {
            if (!peerConnection || !data.candidate) return;
            try {
                await peerConnection.addIceCandidate(new RTCIceCandidate(data.candidate));
            } catch (err) { console.error("Signaling error", err); }
        });

        // The server never re-queues us after the partner leaves
        socket.on('partner_hangup', () => {
            closeConnection();
            if (isActive) join();
        });

        // --- 3. WebRTC ---
        function createPeerConnection(target) {
            if (peerConnection) peerConnection.close();
            peerConnection = new RTCPeerConnection(peerConnectionConfig);

            if (localStream) {
                localStream.getTracks().forEach(track => peerConnection.addTrack(track, localStream));
            }

            peerConnection.ontrack = (event) => {
                if (remoteVideo.srcObject !== event.streams[0]) {
                    remoteVideo.srcObject = event.streams[0];
                    remoteVideo.play().catch(e => console.error("Error playing video:", e));
                }
            };

            peerConnection.onicecandidate = (event) => {
                if (event.candidate) {
                    socket.emit('ice-candidate', { target: target, candidate: event.candidate });
                }
            };
        }

        function closeConnection() {
            if (peerConnection) {
                peerConnection.close();
                peerConnection = null;
            }
            remoteVideo.srcObject = null;
            partnerId = null;
            remotePlaceholder.classList.remove('hidden');
        }

        // --- 4. INTERACTIONS ---
        function join() {
            overlay.classList.remove('hidden');
            socket.emit('join');
        }

        startBtn.addEventListener('click', async () => {
            try {
                await startCamera();
            } catch (err) {
                alert("Please enable camera access to use this app.");
                return;
            }
            isActive = true;
            startBtn.disabled = true;
            nextBtn.disabled = false;
            stopBtn.disabled = false;
            join();
        });

        nextBtn.addEventListener('click', () => {
            socket.emit('hangup');
            closeConnection();
            join();
        });

        stopBtn.addEventListener('click', () => {
            socket.emit('hangup');
            closeConnection();
            isActive = false;
            overlay.classList.add('hidden');
            startBtn.disabled = false;
            nextBtn.disabled = true;
            stopBtn.disabled = true;
        });

        document.addEventListener('keydown', (e) => {
            if (e.key === "Escape" && isActive) nextBtn.click();
        });
    </script>
</body>
</html>
"""


# --- HTTP ROUTES ---
@app.route('/')
def index():
    return render_template_string(HTML_TEMPLATE, ice_servers=app.config['ICE_SERVERS'])


@app.route('/health')
def health():
    return 'Random video chat server is running', 200, {'Content-Type': 'text/plain'}


@app.route('/stats')
def stats():
    return jsonify(matchmaker.stats())


# --- SOCKET EVENTS ---
@socketio.on('connect')
def handle_connect():
    matchmaker.connect(request.sid)


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    matchmaker.handle(Event.DISCONNECT, request.sid)


def _handler(event):
    def handle(data=None):
        matchmaker.handle(event, request.sid, data)
    handle.__name__ = 'handle_' + event.name.lower()
    return handle


for _event in (Event.JOIN, Event.HANGUP) + SIGNALS:
    socketio.on_event(_event.value, _handler(_event))


@socketio.on_error_default
def handle_error(e):
    logger.exception("Error while handling %r from %s", request.event.get('message'), request.sid)


if __name__ == '__main__':
    socketio.run(app, host=os.environ.get('HOST', '0.0.0.0'),
                 port=int(os.environ.get('PORT', 5000)),
                 allow_unsafe_werkzeug=True)
